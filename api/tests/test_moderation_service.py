from __future__ import annotations

import asyncio

import pytest

from classifieds.services.ads import AdInput, AdService
from classifieds.services.errors import NotFoundError, UnauthorizedError, ValidationError
from classifieds.services.moderation import ModerationService
from conftest import FakeRepository


def _create_ad(repository: FakeRepository, uploader, owner) -> str:
    category, subcategories = repository.seed_category("Vehicles", "Bikes")
    payload = AdInput(
        title="City bike",
        description="Three gears, new tyres.",
        price="120",
        category=category["id"],
        subcategory=subcategories[0]["id"],
        city="Ghent",
        country="Belgium",
    )
    return asyncio.run(AdService(repository, uploader).create(payload, owner))


def test_pending_queue_requires_moderator(repository, uploader, seller, moderator) -> None:
    ad_id = _create_ad(repository, uploader, seller)
    service = ModerationService(repository)

    with pytest.raises(UnauthorizedError):
        asyncio.run(service.list_pending(seller))
    assert [ad["id"] for ad in asyncio.run(service.list_pending(moderator))] == [ad_id]


def test_approve_records_decision_and_clears_reason_when_configured(repository, uploader, seller, moderator) -> None:
    ad_id = _create_ad(repository, uploader, seller)
    service = ModerationService(repository, approve_clears_rejection_reason=True)
    asyncio.run(service.reject(ad_id, "Wrong category", moderator))

    record = asyncio.run(service.approve(ad_id, moderator))

    ad = asyncio.run(repository.get_ad(ad_id))
    assert ad["status"] == "approved"
    assert ad["rejection_reason"] is None
    assert record["status"] == "approved"
    assert record["moderator_id"] == moderator.user_id
    assert record["moderator_name"] == "Morgan Moderator"
    assert record["reason"] is None
    assert len(repository.records) == 2


def test_approve_keeps_stale_reason_by_default(repository, uploader, seller, moderator) -> None:
    ad_id = _create_ad(repository, uploader, seller)
    service = ModerationService(repository)
    asyncio.run(service.reject(ad_id, "Wrong category", moderator))
    asyncio.run(service.approve(ad_id, moderator))

    assert asyncio.run(repository.get_ad(ad_id))["rejection_reason"] == "Wrong category"


def test_reject_stores_trimmed_reason(repository, uploader, seller, moderator) -> None:
    ad_id = _create_ad(repository, uploader, seller)
    record = asyncio.run(ModerationService(repository).reject(ad_id, "  blurry photos ", moderator))

    ad = asyncio.run(repository.get_ad(ad_id))
    assert ad["status"] == "rejected"
    assert ad["rejection_reason"] == "blurry photos"
    assert record["reason"] == "blurry photos"


@pytest.mark.parametrize(("ad_id", "reason", "fields"), [("", "spam", ["adId"]), ("x", "  ", ["reason"]), (None, None, ["adId", "reason"])])
def test_reject_requires_ad_id_and_reason(repository, moderator, ad_id, reason, fields) -> None:
    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(ModerationService(repository).reject(ad_id, reason, moderator))
    assert str(exc_info.value) == "Ad ID and reason are required"
    assert exc_info.value.fields == fields
    assert repository.records == []


def test_approve_requires_ad_id(repository, moderator) -> None:
    with pytest.raises(ValidationError, match="Ad ID is required"):
        asyncio.run(ModerationService(repository).approve("  ", moderator))


def test_non_moderator_decisions_change_nothing(repository, uploader, seller) -> None:
    ad_id = _create_ad(repository, uploader, seller)
    service = ModerationService(repository)

    with pytest.raises(UnauthorizedError):
        asyncio.run(service.approve(ad_id, seller))
    with pytest.raises(UnauthorizedError):
        asyncio.run(service.reject(ad_id, "spam", None))

    assert asyncio.run(repository.get_ad(ad_id))["status"] == "pending"
    assert repository.records == []


def test_decision_on_missing_ad_is_not_found(repository, moderator) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(ModerationService(repository).approve("missing", moderator))
    assert repository.records == []


def test_history_lists_decisions_in_order_with_moderator_name(repository, uploader, seller, moderator) -> None:
    ad_id = _create_ad(repository, uploader, seller)
    service = ModerationService(repository)
    asyncio.run(service.approve(ad_id, moderator))
    asyncio.run(service.reject(ad_id, "Sold elsewhere", moderator))

    history = asyncio.run(service.history(ad_id, moderator))
    assert [record["status"] for record in history] == ["approved", "rejected"]
    assert history[0]["moderator_name"] == "Morgan Moderator"

    with pytest.raises(UnauthorizedError):
        asyncio.run(service.history(ad_id, seller))


def test_full_listing_lifecycle(repository, uploader, seller, moderator) -> None:
    ads = AdService(repository, uploader)
    moderation = ModerationService(repository)
    category, subcategories = repository.seed_category("Electronics", "Phones")
    payload = AdInput(
        title="Used phone",
        description="Works fine.",
        price="-5",
        category=category["id"],
        subcategory=subcategories[0]["id"],
        city="Lyon",
        country="France",
    )

    with pytest.raises(ValidationError):
        asyncio.run(ads.create(payload, seller))
    assert repository.ads == {}

    payload.price = "19.99"
    ad_id = asyncio.run(ads.create(payload, seller))
    assert asyncio.run(repository.get_ad(ad_id))["status"] == "pending"

    asyncio.run(moderation.approve(ad_id, moderator))
    assert asyncio.run(repository.get_ad(ad_id))["status"] == "approved"

    payload.description = "Works fine. Charger included."
    assert asyncio.run(ads.update(ad_id, payload, seller))["status"] == "pending"

    asyncio.run(moderation.reject(ad_id, "blurry photos", moderator))
    ad = asyncio.run(repository.get_ad(ad_id))
    assert ad["status"] == "rejected"
    assert ad["rejection_reason"] == "blurry photos"
    rejections = [record for record in repository.records if record["status"] == "rejected"]
    assert len(rejections) == 1
    assert rejections[0]["reason"] == "blurry photos"
