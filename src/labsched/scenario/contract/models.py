"""Pydantic models describing labsched scenario inputs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, PrivateAttr, field_validator, model_validator

from labsched.core.errors import InvalidConfiguration

Day = int  # 0-based day index


class Humidity(str, Enum):
    NORMAL = "NORMAL"
    H85 = "H85"

    def __str__(self) -> str:
        return "85%" if self is Humidity.H85 else "NORMAL"


class TestCategory(str, Enum):
    GAS = "GAS"
    PULLDOWN = "PULLDOWN"
    OTHER = "OTHER"
    CONSUMER_USAGE = "CONSUMER_USAGE"

    # keep pytest from collecting the enum as a test class
    __test__ = False


class Environment(BaseModel):
    """Temperature/humidity setpoint a chamber is fixed to for the horizon.

    Attributes
    ----------
    temperature_c:
        Chamber temperature in degrees Celsius.
    humidity:
        Relative humidity regime; ``H85`` needs a humidity-adjustable chamber.
    """

    model_config = ConfigDict(frozen=True)

    temperature_c: int
    humidity: Humidity = Humidity.NORMAL

    @field_validator("humidity", mode="before")
    @classmethod
    def _normalise_humidity(cls, value: Any) -> Any:
        if isinstance(value, str):
            token = value.strip().upper().rstrip("%")
            if token in {"85", "H85", "RH85"}:
                return Humidity.H85
            if token in {"", "NORMAL", "N"}:
                return Humidity.NORMAL
        return value

    def __str__(self) -> str:
        return f"{self.temperature_c}C/{self.humidity}"

    @classmethod
    def parse(cls, label: str) -> Environment:
        """Parse a rendered label such as ``43C/NORMAL`` or ``25C/85%``."""
        temperature, sep, humidity = label.strip().partition("/")
        if not sep or not temperature.upper().endswith("C"):
            raise ValueError(f"Invalid environment label: {label!r}")
        return cls(temperature_c=int(temperature[:-1]), humidity=humidity)

    @property
    def needs_humidity_control(self) -> bool:
        return self.humidity is Humidity.H85


class TestDefinition(BaseModel):
    """Catalog entry for a certification test.

    Attributes
    ----------
    id:
        Unique test identifier (also the project matrix column name).
    name:
        Display name used in reports.
    environment:
        Environment every execution of the test requires.
    duration_days:
        Run length in whole days (> 0).
    category:
        Phase of the test procedure the test belongs to.
    """

    model_config = ConfigDict(frozen=True)
    __test__ = False

    id: str
    name: str
    environment: Environment
    duration_days: int
    category: TestCategory

    @field_validator("category", mode="before")
    @classmethod
    def _normalise_category(cls, value: Any) -> Any:
        if isinstance(value, str):
            token = value.strip().upper().replace("-", "_").replace(" ", "_")
            return {"CU": "CONSUMER_USAGE"}.get(token, token)
        return value

    @field_validator("duration_days")
    @classmethod
    def _duration_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("TestDefinition.duration_days must be positive")
        return value


class ChamberSpec(BaseModel):
    """Physical test chamber (room) with identical stations."""

    model_config = ConfigDict(frozen=True)

    id: str
    stations: int
    temperature_adjustable: bool = True
    humidity_adjustable: bool = False
    voltage_capable: bool = False

    @field_validator("stations")
    @classmethod
    def _stations_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("ChamberSpec.stations must be positive")
        return value

    def can_host(self, environment: Environment) -> bool:
        """Return ``True`` when the chamber can be set to ``environment``."""
        return self.humidity_adjustable or not environment.needs_humidity_control


class Catalog(BaseModel):
    """Static test and chamber catalog shared by every project of a scenario.

    Attributes
    ----------
    tests:
        Ordered test definitions. The order fixes the column order of project
        requirement vectors.
    chambers:
        Ordered chamber specs. The order is the deterministic tie-break order of
        placement and room search.
    """

    model_config = ConfigDict(frozen=True)

    tests: tuple[TestDefinition, ...]
    chambers: tuple[ChamberSpec, ...]

    _test_index: dict[str, int] = PrivateAttr(default_factory=dict)
    _chamber_index: dict[str, int] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _check_catalog(self) -> Catalog:
        if not self.tests:
            raise ValueError("Catalog must define at least one test")
        if not self.chambers:
            raise ValueError("Catalog must define at least one chamber")
        test_ids = [test.id for test in self.tests]
        if len(set(test_ids)) != len(test_ids):
            raise ValueError("Catalog test ids must be unique")
        chamber_ids = [chamber.id for chamber in self.chambers]
        if len(set(chamber_ids)) != len(chamber_ids):
            raise ValueError("Catalog chamber ids must be unique")
        for category in (TestCategory.GAS, TestCategory.PULLDOWN):
            count = sum(1 for test in self.tests if test.category is category)
            if count > 1:
                raise ValueError(f"Catalog may define at most one {category.value} test ({count} found)")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._test_index = {test.id: idx for idx, test in enumerate(self.tests)}
        self._chamber_index = {chamber.id: idx for idx, chamber in enumerate(self.chambers)}

    def test_ids(self) -> list[str]:
        return [test.id for test in self.tests]

    def chamber_ids(self) -> list[str]:
        return [chamber.id for chamber in self.chambers]

    def index_of(self, test_id: str) -> int:
        try:
            return self._test_index[test_id]
        except KeyError as exc:
            raise KeyError(f"Unknown test id: {test_id}") from exc

    def has_test(self, test_id: str) -> bool:
        return test_id in self._test_index

    def test(self, test_id: str) -> TestDefinition:
        return self.tests[self.index_of(test_id)]

    def chamber(self, chamber_id: str) -> ChamberSpec:
        try:
            return self.chambers[self._chamber_index[chamber_id]]
        except KeyError as exc:
            raise KeyError(f"Unknown chamber id: {chamber_id}") from exc

    def has_chamber(self, chamber_id: str) -> bool:
        return chamber_id in self._chamber_index

    def phase_test(self, category: TestCategory) -> TestDefinition | None:
        """Return the single GAS or PULLDOWN test, if the catalog defines one."""
        return next((test for test in self.tests if test.category is category), None)

    @property
    def total_stations(self) -> int:
        return sum(chamber.stations for chamber in self.chambers)

    @property
    def voltage_stations(self) -> int:
        return sum(chamber.stations for chamber in self.chambers if chamber.voltage_capable)


class Project(BaseModel):
    """Unit under test with its requirement vector and current sample count.

    ``Project`` values are immutable; searches derive new values through
    :meth:`with_samples` and keep project lists index-aligned.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    due_date: Day
    needs_voltage: bool = False
    required: tuple[bool, ...]
    samples: int = 3

    @field_validator("due_date")
    @classmethod
    def _due_non_negative(cls, value: Day) -> Day:
        if value < 0:
            raise ValueError("Project.due_date must be >= 0")
        return value

    @field_validator("samples")
    @classmethod
    def _samples_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Project.samples must be >= 1")
        return value

    def requires(self, test_index: int) -> bool:
        return self.required[test_index]

    def with_samples(self, samples: int) -> Project:
        if samples == self.samples:
            return self
        if samples < 1:
            raise InvalidConfiguration(f"Project {self.id}: samples must be >= 1 (got {samples})")
        return self.model_copy(update={"samples": samples})


class Scenario(BaseModel):
    """A catalog plus the projects to schedule against it.

    Attributes
    ----------
    name:
        Human-readable scenario label (used in telemetry and reports).
    catalog:
        Test and chamber catalog.
    projects:
        Projects in input order; each ``required`` vector aligns with
        ``catalog.tests``.
    solver:
        Raw solver settings from the scenario file, parsed by
        :meth:`labsched.planning.config.SolverConfig.from_mapping`.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    catalog: Catalog
    projects: tuple[Project, ...]
    solver: dict[str, Any] = {}

    @model_validator(mode="after")
    def _check_projects(self) -> Scenario:
        if not self.projects:
            raise ValueError("Scenario must contain at least one project")
        width = len(self.catalog.tests)
        seen: set[str] = set()
        for project in self.projects:
            if len(project.required) != width:
                raise ValueError(
                    f"Project {project.id}: requirement vector has {len(project.required)} "
                    f"entries, catalog defines {width} tests"
                )
            if project.id in seen:
                raise ValueError(f"Duplicate project id: {project.id}")
            seen.add(project.id)
        return self

    def project_ids(self) -> list[str]:
        return [project.id for project in self.projects]


def _as_flag(value: Any, label: str) -> bool:
    if isinstance(value, bool):
        return value
    if value in (0, 1):
        return bool(value)
    raise InvalidConfiguration(f"{label} must be 0/1 (got {value!r})")


def build_projects(
    catalog: Catalog,
    matrix: Sequence[Sequence[int | bool]],
    due_dates: Sequence[int],
    needs_voltage: Sequence[int | bool],
    initial_samples: int = 3,
    *,
    ids: Sequence[str] | None = None,
    samples: Mapping[str, int] | None = None,
) -> list[Project]:
    """Build projects from a 0/1 requirement matrix and per-row arrays.

    Rows are named ``P1..Pn`` unless ``ids`` is given. ``samples`` overrides the
    initial sample count for individual project ids.

    Raises
    ------
    InvalidConfiguration
        When the matrix is empty, a row length differs from the catalog, array
        lengths disagree, or a cell is not 0/1.
    """

    if initial_samples < 1:
        raise InvalidConfiguration("initial_samples must be >= 1")
    if not matrix:
        raise InvalidConfiguration("Project matrix is empty")
    rows = len(matrix)
    width = len(catalog.tests)
    if len(due_dates) != rows:
        raise InvalidConfiguration(
            f"due_dates length must match matrix rows (due_dates={len(due_dates)} rows={rows})"
        )
    if len(needs_voltage) != rows:
        raise InvalidConfiguration(
            f"needs_voltage length must match matrix rows (needs_voltage={len(needs_voltage)} rows={rows})"
        )
    if ids is not None and len(ids) != rows:
        raise InvalidConfiguration(f"ids length must match matrix rows (ids={len(ids)} rows={rows})")

    overrides = dict(samples or {})
    projects: list[Project] = []
    for r, row in enumerate(matrix):
        if len(row) != width:
            raise InvalidConfiguration(f"Matrix row {r} length must be {width} but was {len(row)}")
        project_id = ids[r] if ids is not None else f"P{r + 1}"
        due = int(due_dates[r])
        if due < 0:
            raise InvalidConfiguration(f"due_dates[{r}] must be >= 0")
        required = tuple(_as_flag(cell, f"matrix[{r}][{c}]") for c, cell in enumerate(row))
        count = int(overrides.pop(project_id, initial_samples))
        if count < 1:
            raise InvalidConfiguration(f"Project {project_id}: samples must be >= 1")
        projects.append(
            Project(
                id=project_id,
                due_date=due,
                needs_voltage=_as_flag(needs_voltage[r], f"needs_voltage[{r}]"),
                required=required,
                samples=count,
            )
        )
    if overrides:
        raise InvalidConfiguration(f"Sample overrides for unknown projects: {sorted(overrides)}")
    return projects


__all__ = [
    "Day",
    "Humidity",
    "TestCategory",
    "Environment",
    "TestDefinition",
    "ChamberSpec",
    "Catalog",
    "Project",
    "Scenario",
    "build_projects",
]
