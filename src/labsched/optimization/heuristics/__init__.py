"""Deterministic first-improvement local searches driven by the scheduler."""

from .common import EvaluationBudget, SearchResult, total_samples
from .order_search import edd_order, improve_order, insertion_moves
from .room_search import improve_rooms, move_neighbours, swap_neighbours
from .sample_search import SAMPLE_DELTAS, improve_samples

__all__ = [
    "EvaluationBudget",
    "SAMPLE_DELTAS",
    "SearchResult",
    "edd_order",
    "improve_order",
    "improve_rooms",
    "improve_samples",
    "insertion_moves",
    "move_neighbours",
    "swap_neighbours",
    "total_samples",
]
