"""
Data model for the page probe.

Defines the immutable value objects passed between the probe
components: configured targets, collaborator call results, quality
verdicts, capture outcomes and per-iteration results.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

DEFAULT_TARGET_TIMEOUT_MS = 30000


class ErrorKind(str, Enum):
    """Enumeration of collaborator failure categories."""

    NAVIGATION = "navigation"
    TIMEOUT = "timeout"
    LOAD_STATE = "load_state"
    SCREENSHOT = "screenshot"
    EVALUATION = "evaluation"
    QUALITY = "quality"
    UNEXPECTED = "unexpected"


class Outcome(str, Enum):
    """Enumeration of iteration outcomes."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class TargetSpec:
    """
    A configured page to probe.

    Attributes:
        url: Absolute URL to navigate to.
        name: Display name used in logs, reports and screenshot names.
        timeout_ms: Navigation and load-state budget in milliseconds.
    """

    url: str
    name: str
    timeout_ms: int = DEFAULT_TARGET_TIMEOUT_MS

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "name": self.name, "timeout": self.timeout_ms}


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of one call across the browser boundary.

    Exactly one of ``value`` or ``error_kind`` is meaningful: a result is
    ``ok`` when no error kind is set.
    """

    value: T | None = None
    error_kind: ErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> Result[T]:
        return cls(error_kind=kind, message=message)


@dataclass(frozen=True)
class QualityVerdict:
    """Page-health verdict produced by the quality assessor."""

    has_title: bool
    has_content: bool
    no_critical_errors: bool

    @classmethod
    def failed(cls) -> QualityVerdict:
        """Verdict used when the page could not be inspected at all."""
        return cls(has_title=False, has_content=False, no_critical_errors=False)

    @property
    def healthy(self) -> bool:
        return self.has_title and self.has_content and self.no_critical_errors

    def to_dict(self) -> dict[str, bool]:
        return {
            "has_title": self.has_title,
            "has_content": self.has_content,
            "no_critical_errors": self.no_critical_errors,
        }


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of one screenshot attempt."""

    ok: bool
    path: str
    error: str | None = None


@dataclass(frozen=True)
class IterationResult:
    """
    Record of one (worker, iteration) execution.

    Attributes:
        target_name: Display name of the probed target.
        worker_id: 1-based worker identifier.
        iteration: 0-based iteration index within the worker.
        start_time_ms: Epoch milliseconds at navigation start.
        dom_content_loaded_ms: Navigation time, if navigation completed.
        render_ms: Time from DOM content loaded to the load event, if reached.
        screenshots_taken: Successful captures during this iteration.
        quality_verdict: Verdict from the quality check, if it ran.
        outcome: Success or error.
        reason: Failure message for error outcomes.
    """

    target_name: str
    worker_id: int
    iteration: int
    start_time_ms: int
    dom_content_loaded_ms: int | None = None
    render_ms: int | None = None
    screenshots_taken: int = 0
    quality_verdict: QualityVerdict | None = None
    outcome: Outcome = Outcome.SUCCESS
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_name": self.target_name,
            "worker_id": self.worker_id,
            "iteration": self.iteration,
            "start_time_ms": self.start_time_ms,
            "dom_content_loaded_ms": self.dom_content_loaded_ms,
            "render_ms": self.render_ms,
            "screenshots_taken": self.screenshots_taken,
            "quality_verdict": (
                self.quality_verdict.to_dict() if self.quality_verdict else None
            ),
            "outcome": self.outcome.value,
            "reason": self.reason,
        }
