"""Order-preserving fan-out of independent per-service evaluations."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def map_ordered(
    func: Callable[[T], R], items: Sequence[T], max_workers: int = 1
) -> list[R]:
    """
    Apply ``func`` to every item and return results in input order.

    With ``max_workers > 1`` the calls run on a thread pool. Results are
    still merged in input order, so output never depends on scheduling.
    The first exception raised by ``func`` propagates to the caller.

    Args:
        func: Pure function evaluated once per item
        items: Items to evaluate (usually services sorted by id)
        max_workers: Thread count; 1 evaluates sequentially

    Returns:
        List of results aligned with ``items``
    """
    if max_workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    logger.debug(f"Evaluating {len(items)} items on {max_workers} workers")
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(func, items))


__all__ = ["map_ordered"]
