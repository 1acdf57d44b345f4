"""Telemetry helpers for solver runs."""

from .progress import EventRecorder, ProgressSink, SolverEvent, null_sink
from .run_logger import RunTelemetryLogger, append_jsonl, read_jsonl

__all__ = [
    "EventRecorder",
    "ProgressSink",
    "RunTelemetryLogger",
    "SolverEvent",
    "append_jsonl",
    "null_sink",
    "read_jsonl",
]
