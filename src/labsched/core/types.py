"""Policy enums shared by the scheduler, the searches and the configuration layer."""

from __future__ import annotations

from enum import Enum
from typing import TypeVar

from .errors import InvalidConfiguration

_E = TypeVar("_E", bound=Enum)


class DispatchRule(str, Enum):
    """Priority rule the dispatch loop uses to rank ready jobs."""

    EDD = "EDD"
    MIN_SLACK = "MIN_SLACK"
    ATC = "ATC"


class PulldownGate(str, Enum):
    """When OTHER/CU jobs may start relative to the pulldown phase.

    ``ALL_SAMPLES`` waits for every pulldown job of the project to finish.
    ``PER_SAMPLE`` only waits for the GAS phase; each sample's own pulldown is
    enforced through sample availability.
    """

    ALL_SAMPLES = "ALL_SAMPLES"
    PER_SAMPLE = "PER_SAMPLE"


def parse_enum(enum_cls: type[_E], value: str | _E, label: str) -> _E:
    """Resolve ``value`` to a member of ``enum_cls`` by name (case-insensitive)."""
    if isinstance(value, enum_cls):
        return value
    token = str(value).strip().upper().replace("-", "_")
    try:
        return enum_cls[token]
    except KeyError as exc:
        options = ", ".join(member.name for member in enum_cls)
        raise InvalidConfiguration(f"Unknown {label} {value!r}; expected one of: {options}") from exc


__all__ = ["DispatchRule", "PulldownGate", "parse_enum"]
