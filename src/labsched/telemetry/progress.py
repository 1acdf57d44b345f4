"""Progress events emitted by the solver loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(slots=True)
class SolverEvent:
    """One solver-stage update.

    ``stage`` is one of ``rooms``, ``room_search``, ``sample_search``, ``order_search``,
    ``iteration`` or ``converged``.
    """

    scenario: str
    iteration: int
    max_iterations: int
    stage: str
    total_lateness: int
    total_samples: int
    evaluations: int = 0
    elapsed_seconds: float = 0.0
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def progress_ratio(self) -> float:
        return min(1.0, max(0.0, self.iteration / self.max_iterations)) if self.max_iterations else 1.0


class ProgressSink(Protocol):
    """Invoked by the solver loop after every stage."""

    def __call__(self, event: SolverEvent, /) -> None:  # pragma: no cover - interface only
        ...


def null_sink(event: SolverEvent) -> None:
    return None


class EventRecorder:
    """Sink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[SolverEvent] = []

    def __call__(self, event: SolverEvent) -> None:
        self.events.append(event)

    def stages(self) -> list[str]:
        return [event.stage for event in self.events]


__all__ = ["EventRecorder", "ProgressSink", "SolverEvent", "null_sink"]
