"""Scenario loading utilities (YAML metadata + CSV tables)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd
import yaml
from pydantic import TypeAdapter, ValidationError

from labsched.core.errors import InvalidConfiguration
from labsched.scenario.contract.models import (
    Catalog,
    ChamberSpec,
    Project,
    Scenario,
    TestDefinition,
    build_projects,
)

__all__ = [
    "BatchInstance",
    "catalog_from_mapping",
    "load_batch_instances",
    "load_catalog",
    "load_projects_csv",
    "load_scenario",
    "projects_from_frame",
    "read_csv",
]

_PROJECT_META_COLUMNS = ("project_id", "due_date", "needs_voltage", "samples")
_BATCH_OVERRIDE_COLUMNS = ("initial_samples", "max_samples", "dispatch_rule", "validate")


def read_csv(path: Path) -> pd.DataFrame:
    """Load a CSV file using pandas with UTF-8 defaults."""
    return pd.read_csv(path)


def _resolve_path(root: Path, value: str | Path) -> Path:
    path = Path(value)
    if not path.is_absolute():
        path = root / path
    if not path.exists():
        raise InvalidConfiguration(f"Referenced file not found: {path}")
    return path


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"{path} must contain a YAML mapping")
    return data


def _normalise_test_row(row: Mapping[str, Any]) -> dict[str, Any]:
    entry = dict(row)
    if "environment" not in entry:
        entry["environment"] = {
            "temperature_c": entry.pop("temperature_c", None),
            "humidity": entry.pop("humidity", "NORMAL"),
        }
    entry.setdefault("name", entry.get("id"))
    return entry


def catalog_from_mapping(data: Mapping[str, Any]) -> Catalog:
    """Build a :class:`Catalog` from a ``{tests: [...], chambers: [...]}`` mapping.

    Test rows may nest an ``environment`` mapping or carry flat ``temperature_c`` and
    ``humidity`` keys.
    """

    tests_raw = data.get("tests") or []
    chambers_raw = data.get("chambers") or []
    try:
        tests = TypeAdapter(list[TestDefinition]).validate_python(
            [_normalise_test_row(row) for row in tests_raw]
        )
        chambers = TypeAdapter(list[ChamberSpec]).validate_python(list(chambers_raw))
        return Catalog(tests=tuple(tests), chambers=tuple(chambers))
    except ValidationError as exc:
        raise InvalidConfiguration(f"Invalid catalog: {exc}") from exc


def load_catalog(path: str | Path) -> Catalog:
    """Load a catalog YAML file."""
    return catalog_from_mapping(_read_yaml(Path(path)))


def _flag(value: Any) -> int:
    if isinstance(value, str):
        token = value.strip().lower()
        if token in {"1", "true", "yes", "y"}:
            return 1
        if token in {"0", "false", "no", "n", ""}:
            return 0
        raise InvalidConfiguration(f"Expected a 0/1 flag, got {value!r}")
    if pd.isna(value):
        return 0
    if value not in (0, 1):
        raise InvalidConfiguration(f"Expected a 0/1 flag, got {value!r}")
    return int(value)


def projects_from_frame(
    frame: pd.DataFrame,
    catalog: Catalog,
    initial_samples: int = 3,
) -> list[Project]:
    """Convert a project table into :class:`Project` values.

    Parameters
    ----------
    frame:
        Table with ``project_id``, ``due_date``, ``needs_voltage`` and one 0/1 column per
        catalog test id. An optional ``samples`` column overrides ``initial_samples`` per row.
    catalog:
        Catalog fixing the test column order.
    initial_samples:
        Sample count for rows without an explicit ``samples`` value.

    Raises
    ------
    InvalidConfiguration
        When required columns are missing or cells are not 0/1.
    """

    required_columns = {"project_id", "due_date"} | set(catalog.test_ids())
    missing = sorted(required_columns - set(frame.columns))
    if missing:
        raise InvalidConfiguration(f"Project table missing columns: {missing}")
    unknown = sorted(
        column
        for column in frame.columns
        if column not in _PROJECT_META_COLUMNS
        and column not in _BATCH_OVERRIDE_COLUMNS
        and column != "instance_id"
        and not catalog.has_test(column)
    )
    if unknown:
        raise InvalidConfiguration(f"Project table has unknown test columns: {unknown}")

    ids = [str(value).strip() for value in frame["project_id"]]
    matrix = [[_flag(value) for value in frame[test_id]] for test_id in catalog.test_ids()]
    rows = [list(row) for row in zip(*matrix)] if matrix else []
    needs_voltage = (
        [_flag(value) for value in frame["needs_voltage"]]
        if "needs_voltage" in frame.columns
        else [0] * len(ids)
    )
    samples: dict[str, int] = {}
    if "samples" in frame.columns:
        for project_id, value in zip(ids, frame["samples"]):
            if not pd.isna(value):
                samples[project_id] = int(value)
    return build_projects(
        catalog,
        rows,
        [int(value) for value in frame["due_date"]],
        needs_voltage,
        initial_samples,
        ids=ids,
        samples=samples,
    )


def load_projects_csv(path: str | Path, catalog: Catalog, initial_samples: int = 3) -> list[Project]:
    """Load projects from a CSV table (see :func:`projects_from_frame`)."""
    return projects_from_frame(read_csv(Path(path)), catalog, initial_samples)


def _load_projects_section(
    section: Any, root: Path, catalog: Catalog, initial_samples: int
) -> list[Project]:
    if isinstance(section, (str, Path)):
        section = {"path": section}
    if not isinstance(section, Mapping):
        raise InvalidConfiguration("'projects' must be a CSV path or a mapping")
    if "path" in section:
        return load_projects_csv(_resolve_path(root, section["path"]), catalog, initial_samples)
    try:
        matrix = section["matrix"]
        due_dates = section["due_dates"]
    except KeyError as exc:
        raise InvalidConfiguration(f"Inline projects require '{exc.args[0]}'") from exc
    needs_voltage = section.get("needs_voltage") or [0] * len(matrix)
    return build_projects(
        catalog,
        matrix,
        due_dates,
        needs_voltage,
        initial_samples,
        ids=section.get("ids"),
        samples=section.get("samples"),
    )


def load_scenario(yaml_path: str | Path) -> Scenario:
    """Load a Scenario from a YAML file that references or inlines its tables.

    Parameters
    ----------
    yaml_path:
        Path to the ``scenario.yaml`` file.

    Returns
    -------
    Scenario
        Validated scenario. The ``solver`` section is carried through unparsed so that
        :meth:`SolverConfig.from_mapping` can report configuration errors itself.

    Notes
    -----
    ``catalog`` may be an inline mapping or ``catalog_path`` may point at a separate catalog
    YAML; relative paths are resolved against the scenario directory.
    """

    base_path = Path(yaml_path).resolve()
    meta = _read_yaml(base_path)
    root = base_path.parent

    if "catalog" in meta:
        catalog = catalog_from_mapping(meta["catalog"])
    elif "catalog_path" in meta:
        catalog = load_catalog(_resolve_path(root, meta["catalog_path"]))
    else:
        raise InvalidConfiguration("Scenario requires 'catalog' or 'catalog_path'")

    solver_section = meta.get("solver") or {}
    if not isinstance(solver_section, Mapping):
        raise InvalidConfiguration("'solver' section must be a mapping")
    initial_samples = int(meta.get("initial_samples", solver_section.get("initial_samples", 3)))
    if "projects" not in meta:
        raise InvalidConfiguration("Scenario requires a 'projects' section")
    projects = _load_projects_section(meta["projects"], root, catalog, initial_samples)

    try:
        return Scenario(
            name=str(meta.get("name", base_path.stem)),
            catalog=catalog,
            projects=tuple(projects),
            solver=dict(solver_section),
        )
    except ValidationError as exc:
        raise InvalidConfiguration(f"Invalid scenario {base_path}: {exc}") from exc


@dataclass(slots=True)
class BatchInstance:
    """One instance of a batch CSV: its projects plus per-instance solver overrides."""

    instance_id: str
    projects: list[Project]
    overrides: dict[str, Any] = field(default_factory=dict)


def _first_value(group: pd.DataFrame, column: str) -> Any:
    if column not in group.columns:
        return None
    values = group[column].dropna()
    if values.empty:
        return None
    return values.iloc[0]


def load_batch_instances(
    path: str | Path,
    catalog: Catalog,
    initial_samples: int = 3,
) -> list[BatchInstance]:
    """Group a batch CSV into instances, preserving first-appearance order.

    Each row is a project; ``instance_id`` groups rows. Optional columns
    ``initial_samples``, ``max_samples``, ``dispatch_rule`` and ``validate`` apply to the
    whole instance (first non-empty value wins).
    """

    frame = read_csv(Path(path))
    if "instance_id" not in frame.columns:
        raise InvalidConfiguration(f"Batch file {path} requires an 'instance_id' column")
    frame["instance_id"] = frame["instance_id"].astype(str).str.strip()

    instances: list[BatchInstance] = []
    for instance_id, group in frame.groupby("instance_id", sort=False):
        overrides: dict[str, Any] = {}
        samples_override = _first_value(group, "initial_samples")
        start_samples = int(samples_override) if samples_override is not None else initial_samples
        if samples_override is not None:
            overrides["initial_samples"] = start_samples
        max_samples = _first_value(group, "max_samples")
        if max_samples is not None:
            overrides["max_samples"] = int(max_samples)
        rule = _first_value(group, "dispatch_rule")
        if rule is not None:
            overrides["dispatch_rule"] = str(rule).strip()
        validate = _first_value(group, "validate")
        if validate is not None:
            overrides["validate"] = bool(_flag(validate))
        projects = projects_from_frame(group.reset_index(drop=True), catalog, start_samples)
        instances.append(BatchInstance(str(instance_id), projects, overrides))
    return instances
