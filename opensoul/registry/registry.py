"""
OpenSoul Registry

Core registry logic: upload, look up, update, rate and delete souls.
Metadata lives in SQLite; document and image bytes in blob storage.
"""

import logging
from typing import Any, List

from ..blobs import BlobStorage, BlobImage, image_filename
from ..blobs.base import IMAGE_EXTENSIONS
from ..errors import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from .labels import content_hash, fallback_name, new_slug, slugify
from .models import (
    Soul, User,
    SoulCreate, SoulUpdate, SearchParams,
    SoulPage, UploadResult, RatingResult,
)
from .storage import SoulStorage

logger = logging.getLogger("opensoul.registry")

MIN_IMAGE_BYTES = 1024
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def validate_rating(value: Any) -> int:
    """Integer 1..5. Booleans and fractional numbers are rejected."""
    if isinstance(value, bool):
        raise ValidationError("Rating must be an integer between 1 and 5")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError("Rating must be an integer between 1 and 5")
    return value


class SoulRegistry:
    """
    OpenSoul Registry

    Every mutating operation resolves the soul first (404), then checks
    ownership (403), and only then touches storage.
    """

    def __init__(self, storage: SoulStorage, blobs: BlobStorage):
        self.storage = storage
        self.blobs = blobs
        logger.info(f"Soul Registry initialized (blobs: {type(blobs).__name__})")

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, slug_or_label: str) -> Soul:
        soul = self.storage.get(slug_or_label)
        if not soul:
            raise NotFoundError("Soul not found")
        return soul

    def get_content(self, slug_or_label: str) -> str:
        soul = self.get(slug_or_label)
        content = self.blobs.get_soul(soul.slug)
        if content is None:
            logger.warning(f"Soul {soul.slug} has a row but no content blob")
            raise NotFoundError("Soul content not found")
        return content

    def search(self, params: SearchParams) -> SoulPage:
        """Filter (tag AND search), rank, then paginate."""
        souls, total = self.storage.query(
            search=params.search,
            tag=params.tag,
            sort=params.sort,
            limit=params.limit,
            offset=params.offset,
        )
        return SoulPage.build(souls, total, params)

    def list_by_owner(self, username: str) -> List[Soul]:
        user = self.storage.get_user(username)
        if not user:
            raise NotFoundError(f"User '{username}' not found")
        return self.storage.list_by_user(user.id)

    def _owned(self, slug_or_label: str, user: User) -> Soul:
        soul = self.get(slug_or_label)
        if soul.user_id != user.id:
            raise AuthorizationError("Forbidden")
        return soul

    # =========================================================================
    # Upload & edit
    # =========================================================================

    def upload(self, user: User, request: SoulCreate) -> UploadResult:
        """
        Publish a new soul.

        Bytes are written before the row: a storage failure aborts the
        upload and leaves no row behind.
        """
        if not request.content:
            raise ValidationError("Missing 'content' field")

        name = (request.name or "").strip() or fallback_name(request.content)
        slug = new_slug()
        digest = content_hash(request.content)

        self.blobs.save_soul(slug, request.content)

        soul = self.storage.insert_soul(
            slug=slug,
            name=name,
            user_id=user.id,
            description=request.description,
            tags=request.tags,
        )

        logger.info(f"{user.username} uploaded {soul.label} ({slug}, {digest[:12]})")
        return UploadResult(slug=soul.slug, label=soul.label, name=soul.name, hash=digest)

    def update(self, slug_or_label: str, user: User, request: SoulUpdate) -> Soul:
        if request.is_empty():
            raise ValidationError("Nothing to update")

        if request.label and slugify(request.label) != request.label:
            raise ValidationError(
                "Label may only contain lowercase letters, digits and single hyphens"
            )

        soul = self._owned(slug_or_label, user)
        return self.storage.update(
            soul.id,
            name=request.name,
            label=request.label,
            description=request.description,
            tags=request.tags,
        )

    def replace_content(self, slug_or_label: str, user: User, content: str) -> Soul:
        if not content:
            raise ValidationError("Missing 'content' field")

        soul = self._owned(slug_or_label, user)
        self.blobs.save_soul(soul.slug, content)
        self.storage.touch(soul.id)

        logger.info(f"{user.username} replaced content of {soul.label}")
        return self.get(soul.slug)

    def delete(self, slug_or_label: str, user: User) -> None:
        """Remove image, document bytes and the row, in that order."""
        soul = self._owned(slug_or_label, user)

        if soul.image_url:
            self.blobs.delete_image(soul.slug, soul.image_url)
        self.blobs.delete_soul(soul.slug)
        self.storage.delete(soul.id)

        logger.info(f"{user.username} deleted {soul.label} ({soul.slug})")

    # =========================================================================
    # Ratings & downloads
    # =========================================================================

    def rate(self, slug_or_label: str, user: User, value: Any) -> RatingResult:
        rating = validate_rating(value)
        soul = self.get(slug_or_label)

        avg, count = self.storage.upsert_rating(soul.id, user.id, rating)
        return RatingResult(slug=slug_or_label, rating=rating, rating_avg=avg, rating_count=count)

    def record_download(self, slug_or_label: str) -> bool:
        """Count a download. Unknown identifiers are ignored."""
        counted = self.storage.increment_downloads(slug_or_label)
        if not counted:
            logger.debug(f"Download for unknown soul {slug_or_label} ignored")
        return counted

    # =========================================================================
    # Images
    # =========================================================================

    def set_image(self, slug_or_label: str, user: User, data: bytes, content_type: str) -> str:
        """Store an avatar, replacing any previous one. Returns its filename."""
        soul = self._owned(slug_or_label, user)

        content_type = (content_type or "").split(";")[0].strip().lower()
        if content_type not in IMAGE_EXTENSIONS:
            raise ValidationError("Content-Type must be image/jpeg, image/png, or image/webp")
        if not MIN_IMAGE_BYTES <= len(data) <= MAX_IMAGE_BYTES:
            raise ValidationError("Image must be between 1KB and 5MB")

        filename = image_filename(content_type)
        if soul.image_url:
            self.blobs.delete_image(soul.slug, soul.image_url)

        self.blobs.save_image(soul.slug, filename, data, content_type)
        self.storage.set_image(soul.id, filename)

        logger.info(f"{user.username} set image {filename} on {soul.label}")
        return filename

    def get_image(self, slug_or_label: str) -> BlobImage:
        soul = self.storage.get(slug_or_label)
        if not soul or not soul.image_url:
            raise NotFoundError("Image not found")

        image = self.blobs.get_image(soul.slug, soul.image_url)
        if image is None:
            raise NotFoundError("Image not found")
        return image

    def delete_image(self, slug_or_label: str, user: User) -> None:
        soul = self._owned(slug_or_label, user)
        if soul.image_url:
            self.blobs.delete_image(soul.slug, soul.image_url)
        self.storage.set_image(soul.id, None)
