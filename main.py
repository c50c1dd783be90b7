from __future__ import annotations
import argparse
import json
import logging
from pathlib import Path
from dotenv import load_dotenv
import sys
from pathlib import Path as _P
BASE_DIR = _P(__file__).parent.resolve()
sys.path.insert(0, str(BASE_DIR))
from transition_analyzer.config import load_settings, normalize_provider
from transition_analyzer.errors import ConfigurationError
from transition_analyzer.graph.workflow import TransitionAnalyzer
from transition_analyzer.llm_provider import LLMCompletionService
from transition_analyzer.progress import ProgressTracker
from transition_analyzer.repository import InMemoryRepository
from transition_analyzer.tools.story_search import TavilySearchService


def parse_skills(raw: str | None) -> list[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


def main():
    load_dotenv()  # load .env if exists
    settings = load_settings()

    parser = argparse.ArgumentParser(description="Career Transition Analyzer (Gemini/Mistral + Tavily)")
    parser.add_argument("--current", required=True, help="Current role, e.g. 'Data Analyst'")
    parser.add_argument("--target", required=True, help="Target role, e.g. 'Machine Learning Engineer'")
    parser.add_argument("--skills", default="", help="Comma separated list of existing skills")
    parser.add_argument("--provider", default=settings.provider, choices=["auto", "gemini", "mistral"], help="LLM provider selection")
    parser.add_argument("--force-refresh", action="store_true", help="Discard stored data and analyze again")
    parser.add_argument("--out", default="transition.json", help="Output JSON path")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = settings.model_copy(update={"provider": normalize_provider(args.provider)})

    try:
        completion = LLMCompletionService.from_settings(settings)
        search = TavilySearchService.from_settings(settings)
    except ConfigurationError as e:
        print(f"[ERR] {e}")
        sys.exit(2)

    repository = InMemoryRepository()
    analyzer = TransitionAnalyzer(
        completion=completion,
        search=search,
        repository=repository,
        tracker=ProgressTracker(),
        search_max_results=settings.search_max_results,
    )
    transition = repository.create_transition(args.current, args.target)
    result = analyzer.run(
        args.current,
        args.target,
        transition.id,
        existing_skills=parse_skills(args.skills),
        force_refresh=args.force_refresh,
    )

    if result.errors:
        print("[WARN] Analysis completed with degraded stages:")
        for e in result.errors:
            print(" -", e)

    out_path = Path(args.out)
    out_path.write_text(json.dumps(result.to_payload(), indent=2, ensure_ascii=False), encoding="utf-8")
    print(f"[OK] {len(result.skill_gaps)} skill gap(s), {result.scraped_count} stor(ies) -> {out_path.resolve()}")


if __name__ == "__main__":
    main()
