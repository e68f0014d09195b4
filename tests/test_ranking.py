"""Tests for labels, rating aggregation and ranking."""

from types import SimpleNamespace

import pytest

from opensoul.registry.labels import (
    content_hash,
    fallback_name,
    new_slug,
    next_free_label,
    slugify,
    SLUG_ALPHABET,
)
from opensoul.registry.ranking import (
    SortMode,
    order_by_clause,
    rank,
    round_rating,
    weighted_score,
)


# =============================================================================
# Labels
# =============================================================================

@pytest.mark.parametrize("name, label", [
    ("Ride or Die", "ride-or-die"),
    ("  Chaos Goblin!! ", "chaos-goblin"),
    ("The_Philosopher 2.0", "the-philosopher-2-0"),
    ("!!!", "soul"),
])
def test_slugify(name, label):
    assert slugify(name) == label


def test_next_free_label():
    assert next_free_label("ride-or-die", []) == "ride-or-die"
    assert next_free_label("ride-or-die", ["ride-or-die"]) == "ride-or-die-2"
    assert next_free_label("ride-or-die", ["ride-or-die", "ride-or-die-2"]) == "ride-or-die-3"
    # Gaps are reused
    assert next_free_label("ride-or-die", ["ride-or-die", "ride-or-die-3"]) == "ride-or-die-2"


def test_new_slug():
    slugs = {new_slug() for _ in range(50)}
    assert len(slugs) == 50
    for slug in slugs:
        assert len(slug) == 8
        assert set(slug) <= set(SLUG_ALPHABET)


def test_fallback_name():
    assert fallback_name("# SOUL.md - Ride or Die\n\nText") == "Ride or Die"
    assert fallback_name("intro\n# The Stoic\n") == "The Stoic"
    assert fallback_name("A calm voice\nmore text") == "A calm voice"

    long_line = "x" * 61
    assert fallback_name(long_line) == f"soul-{content_hash(long_line)[:8]}"


# =============================================================================
# Ratings
# =============================================================================

def test_round_rating_half_away_from_zero():
    assert round_rating(9, 2) == 4.5
    assert round_rating(6, 2) == 3.0
    # 4.25 and 4.35 are where binary float rounding goes wrong
    assert round_rating(17, 4) == 4.3
    assert round_rating(87, 20) == 4.4
    assert round_rating(0, 0) == 0.0


# =============================================================================
# Ranking
# =============================================================================

def soul(id, avg=0.0, ratings=0, downloads=0, updated="2024-01-01T00:00:00+00:00"):
    return SimpleNamespace(
        id=id,
        rating_avg=avg,
        rating_count=ratings,
        downloads_count=downloads,
        updated_at=updated,
    )


def test_weighted_score_values():
    assert weighted_score(5.0, 2, 0) == pytest.approx(2.8296, abs=1e-4)
    assert weighted_score(4.5, 50, 0) == pytest.approx(3.4295, abs=1e-4)
    assert weighted_score(0, 0, 0) == 0


def test_top_prefers_proven_quality():
    lucky = soul(1, avg=5.0, ratings=2)
    proven = soul(2, avg=4.5, ratings=50)
    assert [s.id for s in rank([lucky, proven], SortMode.TOP)] == [2, 1]


def test_top_crossover_at_six_ratings():
    lucky = soul(1, avg=5.0, ratings=2)

    assert rank([lucky, soul(2, avg=4.5, ratings=5)], "top")[0].id == 1
    assert rank([lucky, soul(2, avg=4.5, ratings=6)], "top")[0].id == 2


def test_popular_and_recent():
    a = soul(1, ratings=10, downloads=5, updated="2024-01-03T00:00:00+00:00")
    b = soul(2, ratings=1, downloads=50, updated="2024-01-01T00:00:00+00:00")
    c = soul(3, ratings=20, downloads=5, updated="2024-01-02T00:00:00+00:00")

    assert [s.id for s in rank([a, b, c], SortMode.POPULAR)] == [2, 3, 1]
    assert [s.id for s in rank([a, b, c], SortMode.RECENT)] == [1, 3, 2]


def test_sort_mode_parse():
    assert SortMode.parse("top") == SortMode.TOP
    assert SortMode.parse("popular") == SortMode.POPULAR
    assert SortMode.parse("bogus") == SortMode.RECENT
    assert SortMode.parse(None) == SortMode.RECENT
    assert "weighted_score" in order_by_clause("top")
