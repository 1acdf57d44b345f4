"""Context manager recording one solver run as JSONL telemetry.

Run records (``record_type == "run"``) are appended to one shared log; step records of a
run go to ``steps/<run_id>.jsonl`` beside it. Both are plain JSON lines.
"""

from __future__ import annotations

import json
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

from .progress import SolverEvent


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def append_jsonl(path: str | Path, record: Mapping[str, Any]) -> None:
    """Append ``record`` as one compact JSON line, creating parent folders.

    Values JSON cannot encode (enums, paths) are written as strings.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(record, ensure_ascii=False, separators=(",", ":"), default=str)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(line + "\n")


def read_jsonl(path: str | Path, *, record_type: str | None = None) -> list[dict[str, Any]]:
    """Load the records of a telemetry log, optionally only those of one ``record_type``."""
    records: list[dict[str, Any]] = []
    with Path(path).open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            if record_type is None or record.get("record_type") == record_type:
                records.append(record)
    return records


@dataclass(slots=True)
class RunTelemetryLogger(AbstractContextManager["RunTelemetryLogger"]):
    """Record a solver run: one run record plus optional per-stage step records.

    Parameters
    ----------
    log_path:
        JSONL file the terminal run record is appended to.
    scenario:
        Scenario label.
    config:
        Solver configuration snapshot (see :meth:`SolverConfig.to_dict`).
    context:
        Caller metadata such as the CLI command or batch instance id.
    log_steps:
        Write one record per solver stage to ``<log dir>/steps/<run_id>.jsonl``.
    """

    log_path: Path
    scenario: str | None = None
    config: Mapping[str, Any] | None = None
    context: Mapping[str, Any] | None = None
    log_steps: bool = True
    schema_version: str = "1.0"
    run_id: str = field(default_factory=lambda: uuid4().hex, init=False)
    best_lateness: int | None = field(default=None, init=False)
    steps_written: int = field(default=0, init=False)
    _started: float = field(default=0.0, init=False)
    _started_at: str | None = field(default=None, init=False)
    _closed: bool = field(default=False, init=False)
    _steps_path: Path | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.log_path = Path(self.log_path)
        if self.log_steps:
            self._steps_path = self.log_path.parent / "steps" / f"{self.run_id}.jsonl"

    def __enter__(self) -> "RunTelemetryLogger":
        self._started = time.perf_counter()
        self._started_at = _iso_now()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type:
            self.finalize(status="error", error=repr(exc))
        else:
            self.finalize()
        return False

    @property
    def steps_path(self) -> Path | None:
        return self._steps_path

    def log_stage(self, event: SolverEvent) -> None:
        """Append a step record for ``event`` and track the best lateness seen so far."""
        if self.best_lateness is None or event.total_lateness < self.best_lateness:
            self.best_lateness = event.total_lateness
        if self._steps_path is None:
            return
        append_jsonl(
            self._steps_path,
            {
                "record_type": "step",
                "schema_version": self.schema_version,
                "run_id": self.run_id,
                "timestamp": _iso_now(),
                "iteration": event.iteration,
                "stage": event.stage,
                "total_lateness": event.total_lateness,
                "best_lateness": self.best_lateness,
                "total_samples": event.total_samples,
                "evaluations": event.evaluations,
                "elapsed_seconds": round(event.elapsed_seconds, 3),
            },
        )
        self.steps_written += 1

    def elapsed(self) -> float:
        return time.perf_counter() - self._started if self._started else 0.0

    def finalize(
        self,
        *,
        status: str = "ok",
        metrics: Mapping[str, Any] | None = None,
        extra: Mapping[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Write the terminal run record once; later calls are ignored."""
        if self._closed:
            return
        append_jsonl(
            self.log_path,
            {
                "record_type": "run",
                "schema_version": self.schema_version,
                "run_id": self.run_id,
                "scenario": self.scenario,
                "status": status,
                "metrics": dict(metrics or {}),
                "config": dict(self.config or {}),
                "context": dict(self.context or {}),
                "extra": dict(extra or {}),
                "steps": self.steps_written,
                "best_lateness": self.best_lateness,
                "error": error,
                "started_at": self._started_at,
                "finished_at": _iso_now(),
                "duration_seconds": round(self.elapsed(), 3),
            },
        )
        self._closed = True


__all__ = ["RunTelemetryLogger", "append_jsonl", "read_jsonl"]
