from __future__ import annotations

import logging
from typing import Any

from classifieds.core.auth import Action, Principal, authorize
from classifieds.services.errors import ValidationError
from classifieds.services.profiles import sync_profile

logger = logging.getLogger(__name__)


class ModerationService:
    """Review queue and approve/reject decisions.

    Each decision updates the ad and appends one ModerationRecord in the same
    transaction. Decisions are allowed from any status, so an approved ad can
    be rejected later and vice versa.
    """

    def __init__(self, repository: Any, *, approve_clears_rejection_reason: bool = False) -> None:
        self.repository = repository
        self.approve_clears_rejection_reason = approve_clears_rejection_reason

    async def list_pending(self, principal: Principal | None) -> list[dict[str, Any]]:
        authorize(principal, Action.READ_MODERATION)
        return await self.repository.list_ads(status="pending")

    async def approve(self, ad_id: str | None, principal: Principal | None) -> dict[str, Any]:
        moderator = authorize(principal, Action.MODERATE_AD)
        normalized_ad_id = _require_text(ad_id, message="Ad ID is required", field="adId")

        await sync_profile(self.repository, moderator)
        record = await self.repository.record_moderation_decision(
            ad_id=normalized_ad_id,
            moderator_id=moderator.user_id,
            status="approved",
            reason=None,
            clear_rejection_reason=self.approve_clears_rejection_reason,
        )
        logger.info("ad approved ad_id=%s moderator_id=%s", normalized_ad_id, moderator.user_id)
        return record

    async def reject(self, ad_id: str | None, reason: str | None, principal: Principal | None) -> dict[str, Any]:
        moderator = authorize(principal, Action.MODERATE_AD)
        normalized_ad_id = (ad_id or "").strip()
        normalized_reason = (reason or "").strip()
        missing = [name for name, value in (("adId", normalized_ad_id), ("reason", normalized_reason)) if not value]
        if missing:
            raise ValidationError("Ad ID and reason are required", missing)

        await sync_profile(self.repository, moderator)
        record = await self.repository.record_moderation_decision(
            ad_id=normalized_ad_id,
            moderator_id=moderator.user_id,
            status="rejected",
            reason=normalized_reason,
            clear_rejection_reason=False,
        )
        logger.info("ad rejected ad_id=%s moderator_id=%s", normalized_ad_id, moderator.user_id)
        return record

    async def history(self, ad_id: str, principal: Principal | None) -> list[dict[str, Any]]:
        authorize(principal, Action.READ_MODERATION)
        return await self.repository.list_moderation_records(ad_id=ad_id)


def _require_text(value: str | None, *, message: str, field: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise ValidationError(message, [field])
    return stripped
