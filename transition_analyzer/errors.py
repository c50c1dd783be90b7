from __future__ import annotations


class AnalyzerError(Exception):
    """Base class for errors raised by the transition analyzer."""


class ConfigurationError(AnalyzerError):
    pass


class ServiceError(AnalyzerError):
    """A completion or search call failed after retries."""

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class StageError(AnalyzerError):
    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class RepositoryError(AnalyzerError):
    pass


class TransitionNotFoundError(RepositoryError):
    def __init__(self, transition_id: int):
        super().__init__(f"Transition {transition_id} not found")
        self.transition_id = transition_id
