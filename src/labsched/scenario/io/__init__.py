"""Scenario IO helpers."""

from .loaders import (
    BatchInstance,
    catalog_from_mapping,
    load_batch_instances,
    load_catalog,
    load_projects_csv,
    load_scenario,
    projects_from_frame,
    read_csv,
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
