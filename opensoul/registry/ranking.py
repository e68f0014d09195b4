"""
Ranking and rating aggregation.

Sort modes:
    recent   updated_at desc (default)
    popular  downloads desc, then rating count desc
    top      weighted score desc

weighted score = 0.5 * rating_avg + 0.3 * ln(1 + rating_count) + 0.2 * ln(1 + downloads)

The log terms damp volume so that a huge download count cannot bury a
better-rated soul forever, while a single 5-star rating still loses to a
proven 4.5.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

RATING_WEIGHT = 0.5
RATING_COUNT_WEIGHT = 0.3
DOWNLOADS_WEIGHT = 0.2


class SortMode(str, Enum):
    RECENT = "recent"
    POPULAR = "popular"
    TOP = "top"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortMode":
        """Unknown or missing values mean recent."""
        try:
            return cls(value)
        except ValueError:
            return cls.RECENT


def weighted_score(rating_avg: float, rating_count: int, downloads_count: int) -> float:
    return (
        RATING_WEIGHT * (rating_avg or 0.0)
        + RATING_COUNT_WEIGHT * math.log1p(rating_count or 0)
        + DOWNLOADS_WEIGHT * math.log1p(downloads_count or 0)
    )


def round_rating(total: int, count: int) -> float:
    """True mean to one decimal, halves rounded away from zero."""
    if not count:
        return 0.0
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def sort_key(mode: SortMode | str) -> Callable[[object], Tuple]:
    """
    Key function for ordering souls best-first with reverse=True.

    Works on any object with rating_avg, rating_count, downloads_count,
    updated_at and id attributes. id breaks remaining ties (newest first).
    """
    mode = SortMode.parse(mode) if not isinstance(mode, SortMode) else mode

    if mode == SortMode.TOP:
        return lambda s: (weighted_score(s.rating_avg, s.rating_count, s.downloads_count), s.id)
    if mode == SortMode.POPULAR:
        return lambda s: (s.downloads_count, s.rating_count, s.id)
    return lambda s: (s.updated_at, s.id)


def rank(souls: Iterable, mode: SortMode | str = SortMode.RECENT) -> List:
    """Order souls best-first."""
    return sorted(souls, key=sort_key(mode), reverse=True)


def order_by_clause(mode: SortMode | str) -> str:
    """
    SQL ORDER BY matching sort_key. The top mode relies on the
    weighted_score function registered on the connection.
    """
    mode = SortMode.parse(mode) if not isinstance(mode, SortMode) else mode

    if mode == SortMode.TOP:
        return (
            " ORDER BY weighted_score(s.rating_avg, s.rating_count, s.downloads_count) DESC,"
            " s.id DESC"
        )
    if mode == SortMode.POPULAR:
        return " ORDER BY s.downloads_count DESC, s.rating_count DESC, s.id DESC"
    return " ORDER BY s.updated_at DESC, s.id DESC"
