"""Immutable solver configuration threaded through every solver stage."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from labsched.core.errors import InvalidConfiguration
from labsched.core.types import DispatchRule, PulldownGate, parse_enum

__all__ = ["ROOM_ASSIGNERS", "SolverConfig"]

ROOM_ASSIGNERS = ("greedy", "exact")

_BOOL_TOKENS = {"1": True, "true": True, "yes": True, "on": True, "0": False, "false": False, "no": False, "off": False}


@dataclass(frozen=True)
class SolverConfig:
    """Configuration for one solver run.

    Parameters
    ----------
    dispatch_rule:
        Priority rule used by the dispatch loop.
    atc_k:
        Look-ahead parameter of the ATC rule (> 0).
    pulldown_gate:
        Release policy of OTHER/CU jobs relative to the pulldown phase.
    room_assigner:
        ``"greedy"`` (largest-first plus repair) or ``"exact"`` (branch and bound).
    voltage_weight:
        Weight of the voltage-balance term in the room objective (>= 0).
    exact_max_nodes:
        Search-node cap of the exact room assigner; when it is reached the best assignment
        found so far is used without an optimality proof.
    room_ls_enabled, room_ls_max_evals, room_ls_swap, room_ls_move, room_ls_include_samples:
        Room local search toggle, evaluation budget, move families and whether each room
        candidate is scored after a sample-count search.
    sample_ls_enabled, sample_ls_max_evals:
        Sample-count local search toggle and evaluation budget.
    min_samples, max_samples, initial_samples:
        Sample-count bounds and the starting count for projects built from a matrix.
    order_ls_enabled, order_ls_window, order_ls_max_passes, order_ls_max_evals:
        Dispatch-order local search toggle, insertion window, pass cap and evaluation budget.
        Only active under :attr:`DispatchRule.EDD`.
    max_iterations:
        Cap on room-assignment iterations of the solver loop.
    validate:
        Check every committed solution and raise ``ValidationFailure`` on violations.
    max_dispatch_steps:
        Placement safety cap of one scheduler evaluation.
    """

    dispatch_rule: DispatchRule = DispatchRule.EDD
    atc_k: float = 3.0
    pulldown_gate: PulldownGate = PulldownGate.ALL_SAMPLES
    room_assigner: str = "greedy"
    voltage_weight: float = 2.0
    exact_max_nodes: int = 100_000
    room_ls_enabled: bool = True
    room_ls_max_evals: int = 80
    room_ls_swap: bool = True
    room_ls_move: bool = True
    room_ls_include_samples: bool = False
    sample_ls_enabled: bool = True
    sample_ls_max_evals: int = 8000
    min_samples: int = 3
    max_samples: int = 6
    initial_samples: int = 3
    order_ls_enabled: bool = True
    order_ls_window: int = 5
    order_ls_max_passes: int = 2
    order_ls_max_evals: int = 2000
    max_iterations: int = 5
    validate: bool = True
    max_dispatch_steps: int = 200_000

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "dispatch_rule", parse_enum(DispatchRule, self.dispatch_rule, "dispatch rule")
        )
        object.__setattr__(
            self, "pulldown_gate", parse_enum(PulldownGate, self.pulldown_gate, "pulldown gate")
        )
        assigner = str(self.room_assigner).strip().lower()
        if assigner not in ROOM_ASSIGNERS:
            raise InvalidConfiguration(
                f"Unknown room assigner {self.room_assigner!r}; expected one of: {', '.join(ROOM_ASSIGNERS)}"
            )
        object.__setattr__(self, "room_assigner", assigner)
        if self.atc_k <= 0:
            raise InvalidConfiguration("atc_k must be > 0")
        if self.voltage_weight < 0:
            raise InvalidConfiguration("voltage_weight must be >= 0")
        if self.min_samples < 1:
            raise InvalidConfiguration("min_samples must be >= 1")
        if self.max_samples < self.min_samples:
            raise InvalidConfiguration(
                f"max_samples must be >= min_samples ({self.max_samples} < {self.min_samples})"
            )
        if not self.min_samples <= self.initial_samples <= self.max_samples:
            raise InvalidConfiguration(
                "initial_samples must lie within [min_samples, max_samples] "
                f"({self.initial_samples} not in [{self.min_samples}, {self.max_samples}])"
            )
        for name in (
            "room_ls_max_evals",
            "sample_ls_max_evals",
            "order_ls_max_evals",
            "order_ls_max_passes",
            "order_ls_window",
            "max_iterations",
            "max_dispatch_steps",
            "exact_max_nodes",
        ):
            if getattr(self, name) < 1:
                raise InvalidConfiguration(f"{name} must be >= 1")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None, **overrides: Any) -> SolverConfig:
        """Build a config from a ``solver:`` YAML section plus keyword overrides.

        Keys are snake_case field names; enum values resolve by name, case-insensitively.
        Overrides whose value is ``None`` are ignored so CLI options can be passed through
        unconditionally.
        """

        known = {item.name: item for item in fields(cls)}
        merged: dict[str, Any] = {}
        supplied = {key: value for key, value in overrides.items() if value is not None}
        for key, value in {**dict(data or {}), **supplied}.items():
            name = str(key).strip().replace("-", "_")
            if name not in known:
                raise InvalidConfiguration(f"Unknown solver setting: {key!r}")
            if value is None:
                continue
            merged[name] = _coerce(name, known[name].default, value)
        return cls(**merged)

    def with_overrides(self, **overrides: Any) -> SolverConfig:
        """Return a copy with non-``None`` overrides applied (CLI flags over YAML)."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        return replace(self, **updates)

    @property
    def order_search_active(self) -> bool:
        return self.order_ls_enabled and self.dispatch_rule is DispatchRule.EDD

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly snapshot (enum members rendered by value)."""
        payload = asdict(self)
        payload["dispatch_rule"] = self.dispatch_rule.value
        payload["pulldown_gate"] = self.pulldown_gate.value
        return payload


def _coerce(name: str, default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        token = str(value).strip().lower()
        if token not in _BOOL_TOKENS:
            raise InvalidConfiguration(f"{name} must be a boolean (got {value!r})")
        return _BOOL_TOKENS[token]
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise InvalidConfiguration(f"{name} must be an integer (got {value!r})") from exc
    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidConfiguration(f"{name} must be a number (got {value!r})") from exc
    return value
