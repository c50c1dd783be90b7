from __future__ import annotations
import logging
import threading
import time
from typing import Any, Dict, Optional
from .state import RunPhase, RunState, RunStatus

logger = logging.getLogger(__name__)


class ProgressTracker:
    """In-process registry of analysis runs keyed by transition id.

    `admit` is the only admission gate: while an entry is IN_PROGRESS a
    second caller is refused unless it forces a refresh. Every admission bumps
    the entry's generation and returns it as the run's token; `update` and
    `release` with a superseded token are ignored, so a run that was taken
    over by a forced refresh cannot overwrite its successor. Entries live for
    the lifetime of the process and are not persisted; the repository's
    `is_complete` flag is the durable record.
    """

    def __init__(self) -> None:
        self._runs: Dict[int, RunState] = {}
        self._lock = threading.Lock()

    def _entry(self, transition_id: int) -> RunState:
        run = self._runs.get(transition_id)
        if run is None:
            run = RunState(transition_id=transition_id)
            self._runs[transition_id] = run
        return run

    def admit(self, transition_id: int, force_refresh: bool = False) -> Optional[int]:
        """Token for the admitted run, or None when another run holds the entry."""
        with self._lock:
            run = self._entry(transition_id)
            if run.state == RunStatus.IN_PROGRESS and not force_refresh:
                return None
            if run.state == RunStatus.IN_PROGRESS:
                logger.warning(f"Forcing refresh of in-flight transition {transition_id}")
            run.generation += 1
            run.state = RunStatus.IN_PROGRESS
            run.phase = RunPhase.ADMITTED
            run.data = {}
            run.updated_at = time.time()
            return run.generation

    def try_acquire(self, transition_id: int, force_refresh: bool = False) -> bool:
        return self.admit(transition_id, force_refresh) is not None

    def _stale(self, run: RunState, token: Optional[int]) -> bool:
        if token is None or token == run.generation:
            return False
        logger.info(f"Ignoring superseded run {token} of transition {run.transition_id}")
        return True

    def update(
        self,
        transition_id: int,
        data: Optional[Dict[str, Any]] = None,
        state: Optional[RunStatus] = None,
        phase: Optional[RunPhase] = None,
        token: Optional[int] = None,
    ) -> None:
        with self._lock:
            run = self._entry(transition_id)
            if self._stale(run, token):
                return
            if data:
                # top-level keys replace wholesale, no deep merge
                run.data = {**run.data, **data}
            if state is not None:
                run.state = state
            if phase is not None:
                run.phase = phase
            run.updated_at = time.time()

    def release(self, transition_id: int, token: Optional[int] = None) -> None:
        with self._lock:
            run = self._entry(transition_id)
            if self._stale(run, token):
                return
            if run.state == RunStatus.IN_PROGRESS:
                # released without reaching a terminal state
                run.state = RunStatus.FAILED
                run.phase = RunPhase.FAILED
            run.updated_at = time.time()

    def snapshot(self, transition_id: int) -> Optional[RunState]:
        with self._lock:
            run = self._runs.get(transition_id)
            return run.model_copy(deep=True) if run is not None else None
