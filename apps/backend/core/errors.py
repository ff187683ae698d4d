"""
Ingestion error taxonomy and the tagged result used between pipeline stages.
"""

from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class IngestionError(Exception):
    """Base class for ingestion failures"""


class ConfigurationError(IngestionError):
    """Missing or invalid source configuration; the source is skipped."""


class ParseError(IngestionError):
    """Malformed or unexpected payload; the page/item is skipped."""


class PersistenceError(IngestionError):
    """Record store or search index write failed; aborts the current run."""


class RunCancelled(IngestionError):
    """Cooperative cancellation was requested."""


class StageResult(Generic[T]):
    """Tagged ok/fail outcome of a single orchestrator stage"""

    def __init__(self, value: Optional[T] = None, error: Optional[BaseException] = None, stage: str = ""):
        self.value = value
        self.error = error
        self.stage = stage

    @classmethod
    def ok(cls, value: Any = None, stage: str = "") -> "StageResult":
        return cls(value=value, stage=stage)

    @classmethod
    def fail(cls, error: BaseException, stage: str = "") -> "StageResult":
        return cls(error=error, stage=stage)

    def is_success(self) -> bool:
        return self.error is None

    def __repr__(self):
        if self.is_success():
            return f"StageResult(ok, stage={self.stage})"
        return f"StageResult(fail, stage={self.stage}, error={self.error!r})"
