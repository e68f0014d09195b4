"""
Soul Registry API Routes

FastAPI routers for soul CRUD, content, ratings and images.
Errors are raised as OpenSoulError and rendered by the app's handler.
Handlers that reach blob storage are sync so they run in the threadpool.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from ..errors import AuthenticationError
from .models import (
    Soul, User,
    SoulCreate, SoulUpdate, ContentUpdate, RatingRequest, SearchParams,
    SoulPage, UploadResult, RatingResult, ImageResult,
)
from .registry import SoulRegistry

logger = logging.getLogger("opensoul.registry.routes")


def bearer_dependency(registry: SoulRegistry):
    """Dependency resolving 'Authorization: Bearer <token>' to a User."""

    def require_user(authorization: Optional[str] = Header(default=None)) -> User:
        if not authorization:
            raise AuthenticationError("Authentication required")

        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Authentication required")

        user = registry.storage.get_user_by_token(token.strip())
        if not user:
            logger.debug("Rejected request with unknown bearer token")
            raise AuthenticationError("Invalid token")
        return user

    return require_user


def create_soul_router(registry: SoulRegistry) -> APIRouter:
    """Create FastAPI router for soul operations."""

    router = APIRouter(prefix="/api/v1/souls", tags=["souls"])
    require_user = bearer_dependency(registry)

    # =========================================================================
    # Listing & metadata
    # =========================================================================

    @router.get("", response_model=SoulPage)
    async def list_souls(
        search: Optional[str] = Query(default=None),
        tag: Optional[str] = Query(default=None),
        sort: Optional[str] = Query(default=None),
        page: int = Query(default=1),
        limit: int = Query(default=20),
    ):
        """List or search souls. Tag and search filters combine."""
        params = SearchParams.build(search=search, tag=tag, sort=sort, page=page, limit=limit)
        return registry.search(params)

    @router.post("", status_code=201, response_model=UploadResult)
    def upload_soul(request: SoulCreate, user: User = Depends(require_user)):
        """Publish a soul document."""
        return registry.upload(user, request)

    @router.get("/{slug}", response_model=Soul)
    async def get_soul(slug: str):
        """Soul metadata by slug or label."""
        return registry.get(slug)

    @router.patch("/{slug}", response_model=Soul)
    async def update_soul(slug: str, request: SoulUpdate, user: User = Depends(require_user)):
        """Update name, label, description or tags. Owner only."""
        return registry.update(slug, user, request)

    @router.delete("/{slug}")
    def delete_soul(slug: str, user: User = Depends(require_user)):
        registry.delete(slug, user)
        return {"ok": True}

    # =========================================================================
    # Content
    # =========================================================================

    @router.get("/{slug}/content", response_class=PlainTextResponse)
    def get_content(slug: str):
        return PlainTextResponse(registry.get_content(slug), media_type="text/markdown; charset=utf-8")

    @router.put("/{slug}/content")
    def replace_content(slug: str, request: ContentUpdate, user: User = Depends(require_user)):
        registry.replace_content(slug, user, request.content)
        return {"ok": True}

    @router.post("/{slug}/download")
    async def track_download(slug: str):
        """Count a download. Unknown souls are ignored."""
        registry.record_download(slug)
        return {"ok": True}

    # =========================================================================
    # Ratings
    # =========================================================================

    @router.post("/{slug}/rate", response_model=RatingResult)
    async def rate_soul(slug: str, request: RatingRequest, user: User = Depends(require_user)):
        return registry.rate(slug, user, request.rating)

    # =========================================================================
    # Images
    # =========================================================================

    @router.get("/{slug}/image")
    def get_image(slug: str):
        image = registry.get_image(slug)
        return Response(
            content=image.data,
            media_type=image.content_type,
            headers={"Cache-Control": "public, no-cache"},
        )

    @router.post("/{slug}/image", response_model=ImageResult)
    async def upload_image(slug: str, request: Request, user: User = Depends(require_user)):
        """Raw image body; Content-Type must be jpeg, png or webp."""
        data = await request.body()
        filename = await run_in_threadpool(
            registry.set_image, slug, user, data, request.headers.get("content-type", "")
        )
        return ImageResult(image_url=filename)

    @router.delete("/{slug}/image")
    def delete_image(slug: str, user: User = Depends(require_user)):
        registry.delete_image(slug, user)
        return {"ok": True}

    return router


def create_user_router(registry: SoulRegistry) -> APIRouter:
    """Per-user listing."""

    router = APIRouter(prefix="/api/v1/users", tags=["users"])

    @router.get("/{username}")
    async def list_user_souls(username: str):
        souls = registry.list_by_owner(username)
        return {
            "username": username,
            "souls": [s.model_dump() for s in souls],
            "count": len(souls),
        }

    return router
