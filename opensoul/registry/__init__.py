"""
OpenSoul Registry

Publish, rank and serve soul documents.

Identity: every soul has an opaque slug and a human-readable label
minted from its name. Ratings aggregate to a one-decimal average, and the
top ordering blends quality with engagement on a log scale.
"""

from .models import (
    Soul, User,
    SoulCreate, SoulUpdate, ContentUpdate, RatingRequest, SearchParams,
    SoulPage, UploadResult, RatingResult,
)
from .storage import SoulStorage
from .registry import SoulRegistry, validate_rating
from .routes import create_soul_router, create_user_router
from .ranking import SortMode, weighted_score, round_rating, rank
from .labels import slugify, next_free_label, new_slug, fallback_name, content_hash

__all__ = [
    "Soul",
    "User",
    "SoulCreate",
    "SoulUpdate",
    "ContentUpdate",
    "RatingRequest",
    "SearchParams",
    "SoulPage",
    "UploadResult",
    "RatingResult",
    "SoulStorage",
    "SoulRegistry",
    "validate_rating",
    "create_soul_router",
    "create_user_router",
    "SortMode",
    "weighted_score",
    "round_rating",
    "rank",
    "slugify",
    "next_free_label",
    "new_slug",
    "fallback_name",
    "content_hash",
]
