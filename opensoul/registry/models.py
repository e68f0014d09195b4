"""
Soul Registry Models

Pydantic models for registry records, request bodies and responses.
"""

import math
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .ranking import SortMode

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class User(BaseModel):
    """A registry account. Authenticates with a bearer token."""
    id: int
    username: str
    created_at: str


class Soul(BaseModel):
    """A published soul document (metadata only; bytes live in blob storage)."""
    id: int
    slug: str = Field(..., description="Opaque random identifier")
    label: str = Field(..., description="Human-readable unique identifier")
    name: str
    user_id: int
    author: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    rating_avg: float = 0.0
    rating_count: int = 0
    downloads_count: int = 0
    image_url: Optional[str] = None
    created_at: str
    updated_at: str


# =============================================================================
# Request bodies
# =============================================================================

class SoulCreate(BaseModel):
    """Upload request."""
    content: str = ""
    name: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class SoulUpdate(BaseModel):
    """Metadata update. At least one field must be set."""
    name: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None

    def is_empty(self) -> bool:
        return not self.name and not self.label and self.description is None and self.tags is None


class ContentUpdate(BaseModel):
    content: str = ""


class RatingRequest(BaseModel):
    # Validated by the registry so that 4.5, "5" and true all get the same 400
    rating: Any = None


class SearchParams(BaseModel):
    """List/search query. Out-of-range paging is clamped, never rejected."""
    search: Optional[str] = None
    tag: Optional[str] = None
    sort: SortMode = SortMode.RECENT
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @classmethod
    def build(
        cls,
        search: Optional[str] = None,
        tag: Optional[str] = None,
        sort: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> "SearchParams":
        return cls(
            search=search or None,
            tag=tag or None,
            sort=SortMode.parse(sort),
            page=max(1, page or 1),
            limit=min(MAX_PAGE_SIZE, max(1, limit if limit is not None else DEFAULT_PAGE_SIZE)),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# =============================================================================
# Responses
# =============================================================================

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class SoulPage(BaseModel):
    data: List[Soul]
    pagination: Pagination

    @classmethod
    def build(cls, souls: List[Soul], total: int, params: SearchParams) -> "SoulPage":
        return cls(
            data=souls,
            pagination=Pagination(
                page=params.page,
                limit=params.limit,
                total=total,
                totalPages=math.ceil(total / params.limit),
            ),
        )


class UploadResult(BaseModel):
    slug: str
    label: str
    name: str
    hash: str


class RatingResult(BaseModel):
    slug: str
    rating: int
    rating_avg: float
    rating_count: int


class ImageResult(BaseModel):
    image_url: str
