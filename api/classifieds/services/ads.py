from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from classifieds.core.auth import Action, Principal, authorize
from classifieds.services.errors import NotFoundError, UnauthorizedError, ValidationError
from classifieds.services.images import ImageUploader, ImageUploadError
from classifieds.services.profiles import sync_profile

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 2000
MAX_PRICE = Decimal("9999999999.99")
PRICE_STEP = Decimal("0.01")
REQUIRED_FIELDS = ("title", "description", "price", "category", "subcategory", "city", "country")


@dataclass(slots=True)
class AdInput:
    """Raw ad fields as submitted by the caller. ``status`` is accepted and ignored."""

    title: str | None = None
    description: str | None = None
    price: str | int | float | None = None
    category: str | None = None
    subcategory: str | None = None
    city: str | None = None
    country: str | None = None
    status: str | None = None


@dataclass(slots=True)
class ImageFile:
    data: bytes
    filename: str | None = None


@dataclass(slots=True)
class ValidatedAd:
    title: str
    description: str
    price: Decimal
    category_id: str
    subcategory_id: str
    city: str
    country: str


def validate_ad_input(payload: AdInput) -> ValidatedAd:
    invalid: list[str] = []
    values: dict[str, str] = {}
    for field_name in REQUIRED_FIELDS:
        if field_name == "price":
            continue
        text = _coerce_text(getattr(payload, field_name))
        if text is None:
            invalid.append(field_name)
        else:
            values[field_name] = text

    price = parse_price(payload.price)
    if price is None:
        invalid.append("price")

    if "title" in values and len(values["title"]) > TITLE_MAX_LENGTH:
        invalid.append("title")
    if "description" in values and len(values["description"]) > DESCRIPTION_MAX_LENGTH:
        invalid.append("description")

    if invalid or price is None:
        ordered = [name for name in REQUIRED_FIELDS if name in invalid]
        raise ValidationError(f"Missing or invalid required fields: {', '.join(ordered)}", ordered)

    return ValidatedAd(
        title=values["title"],
        description=values["description"],
        price=price,
        category_id=values["category"],
        subcategory_id=values["subcategory"],
        city=values["city"],
        country=values["country"],
    )


def parse_price(value: Any) -> Decimal | None:
    """Parse a submitted price into a finite, non-negative decimal; ``None`` when invalid.

    Prices are stored in cents, so anything finer than two decimal places is
    rejected rather than rounded.
    """
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        price = Decimal(text)
    except InvalidOperation:
        return None
    if not price.is_finite() or price < 0 or price > MAX_PRICE:
        return None
    if price.quantize(PRICE_STEP) != price:
        return None
    return price


def parse_retained_images(raw: str | None) -> list[str]:
    if raw is None or not raw.strip():
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("existingImages must be a JSON list of URLs", ["existingImages"]) from exc
    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        raise ValidationError("existingImages must be a JSON list of URLs", ["existingImages"])
    return parsed


class AdService:
    def __init__(self, repository: Any, image_uploader: ImageUploader) -> None:
        self.repository = repository
        self.image_uploader = image_uploader

    async def create(
        self,
        payload: AdInput,
        principal: Principal | None,
        images: Sequence[ImageFile] = (),
    ) -> str:
        caller = authorize(principal, Action.CREATE_AD)
        ad = validate_ad_input(payload)
        await self._check_subcategory(ad)
        await sync_profile(self.repository, caller)

        image_urls = await self._upload_all(images)
        ad_id = await self.repository.create_ad(
            owner_id=caller.user_id,
            title=ad.title,
            description=ad.description,
            price=ad.price,
            category_id=ad.category_id,
            subcategory_id=ad.subcategory_id,
            city=ad.city,
            country=ad.country,
            images=image_urls,
        )
        logger.info("ad created ad_id=%s owner_id=%s images=%s", ad_id, caller.user_id, len(image_urls))
        return ad_id

    async def update(
        self,
        ad_id: str,
        payload: AdInput,
        principal: Principal | None,
        *,
        retained_images: Sequence[str] = (),
        images: Sequence[ImageFile] = (),
    ) -> dict[str, Any]:
        """Overwrite an ad on behalf of its owner and send it back to review.

        Every edit resets the status to pending and drops any rejection
        reason. The final image list is the retained subset of the current
        images, in the caller's order, followed by the new uploads.
        """
        if principal is None:
            raise UnauthorizedError("Unauthorized")
        existing = await self.repository.get_ad(ad_id)
        caller = authorize(principal, Action.EDIT_AD, existing)

        ad = validate_ad_input(payload)
        await self._check_subcategory(ad)

        current_images = set(existing.get("images") or [])
        kept: list[str] = []
        for url in retained_images:
            if url in current_images and url not in kept:
                kept.append(url)

        new_urls = await self._upload_all(images)
        updated = await self.repository.update_ad(
            ad_id=ad_id,
            title=ad.title,
            description=ad.description,
            price=ad.price,
            category_id=ad.category_id,
            subcategory_id=ad.subcategory_id,
            city=ad.city,
            country=ad.country,
            images=kept + new_urls,
        )
        logger.info(
            "ad updated ad_id=%s owner_id=%s previous_status=%s kept_images=%s new_images=%s",
            ad_id,
            caller.user_id,
            existing.get("status"),
            len(kept),
            len(new_urls),
        )
        return updated

    async def fetch_by_id(self, ad_id: str) -> dict[str, Any]:
        return await self.repository.get_ad(ad_id)

    async def list_mine(self, principal: Principal | None) -> list[dict[str, Any]]:
        caller = authorize(principal, Action.LIST_OWN_ADS)
        return await self.repository.list_ads(owner_id=caller.user_id)

    async def _check_subcategory(self, ad: ValidatedAd) -> None:
        try:
            subcategory = await self.repository.get_subcategory(ad.subcategory_id)
        except NotFoundError as exc:
            raise ValidationError("Subcategory does not exist", ["subcategory"]) from exc
        if subcategory["category"]["id"] != ad.category_id:
            raise ValidationError("Subcategory does not belong to the selected category", ["category", "subcategory"])

    async def _upload_all(self, images: Sequence[ImageFile]) -> list[str]:
        urls: list[str] = []
        for image in images:
            try:
                urls.append(await self.image_uploader.upload(image.data, filename=image.filename))
            except ImageUploadError:
                if urls:
                    logger.warning("image upload aborted; already stored images are orphaned urls=%s", urls)
                raise
        return urls


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None
