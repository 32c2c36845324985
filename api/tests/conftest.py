from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import classifieds.core.security as security
from classifieds.api.deps import get_image_uploader, get_repository
from classifieds.core.auth import Principal
from classifieds.core.config import get_settings
from classifieds.main import app
from classifieds.services.errors import ConflictError, NotFoundError, ValidationError
from classifieds.services.images import ImageUploadError

SELLER_ID = "33333333-3333-3333-3333-333333333333"
OTHER_SELLER_ID = "44444444-4444-4444-4444-444444444444"
MODERATOR_ID = "22222222-2222-2222-2222-222222222222"

SUPABASE_USERS: dict[str, dict[str, Any]] = {
    "seller-token": {
        "id": SELLER_ID,
        "email": "Seller@Example.com",
        "app_metadata": {"role": "user"},
        "user_metadata": {"name": "Sam Seller"},
    },
    "other-seller-token": {
        "id": OTHER_SELLER_ID,
        "email": "buyer@example.com",
        "app_metadata": {},
        "user_metadata": {"role": "moderator"},
    },
    "moderator-token": {
        "id": MODERATOR_ID,
        "email": "moderator@example.com",
        "app_metadata": {"role": "moderator"},
        "user_metadata": {"name": "Morgan Moderator"},
    },
}


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class FakeRepository:
    """In-memory stand-in for PostgresRepository with the same error semantics."""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.categories: dict[str, dict[str, Any]] = {}
        self.subcategories: dict[str, dict[str, Any]] = {}
        self.ads: dict[str, dict[str, Any]] = {}
        self.records: list[dict[str, Any]] = []
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def seed_category(self, name: str, *subcategory_names: str) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        now = self._now()
        category = {"id": str(uuid.uuid4()), "name": name, "created_at": now, "updated_at": now}
        self.categories[category["id"]] = category
        subcategories = []
        for subcategory_name in subcategory_names:
            row = {
                "id": str(uuid.uuid4()),
                "name": subcategory_name,
                "category_id": category["id"],
                "created_at": now,
                "updated_at": now,
            }
            self.subcategories[row["id"]] = row
            subcategories.append(self._subcategory_view(row))
        return dict(category), subcategories

    # users

    async def ensure_user(self, *, user_id: str, name: str, email: str | None, role: str) -> None:
        for existing_id, row in self.users.items():
            if email and existing_id != user_id and row["email"] == email:
                raise ConflictError("email is already registered to another user")
        current = self.users.get(user_id, {})
        self.users[user_id] = {
            "id": user_id,
            "name": name,
            "email": email or current.get("email"),
            "role": role,
        }

    # ads

    async def create_ad(
        self,
        *,
        owner_id: str,
        title: str,
        description: str,
        price: Decimal,
        category_id: str,
        subcategory_id: str,
        city: str,
        country: str,
        images: list[str],
    ) -> str:
        if category_id not in self.categories or subcategory_id not in self.subcategories:
            raise ValidationError("category or subcategory does not exist", ["category", "subcategory"])
        if owner_id not in self.users:
            raise ValidationError("invalid user id", ["user"])
        now = self._now()
        ad_id = str(uuid.uuid4())
        self.ads[ad_id] = {
            "id": ad_id,
            "owner_id": owner_id,
            "title": title,
            "description": description,
            "price": price,
            "category_id": category_id,
            "subcategory_id": subcategory_id,
            "city": city,
            "country": country,
            "images": list(images),
            "status": "pending",
            "rejection_reason": None,
            "created_at": now,
            "updated_at": now,
        }
        return ad_id

    async def get_ad(self, ad_id: str) -> dict[str, Any]:
        row = self.ads.get(ad_id)
        if row is None:
            raise NotFoundError("Ad not found")
        return self._ad_view(row)

    async def update_ad(
        self,
        *,
        ad_id: str,
        title: str,
        description: str,
        price: Decimal,
        category_id: str,
        subcategory_id: str,
        city: str,
        country: str,
        images: list[str],
    ) -> dict[str, Any]:
        row = self.ads.get(ad_id)
        if row is None:
            raise NotFoundError("Ad not found")
        if category_id not in self.categories or subcategory_id not in self.subcategories:
            raise ValidationError("category or subcategory does not exist", ["category", "subcategory"])
        row.update(
            title=title,
            description=description,
            price=price,
            category_id=category_id,
            subcategory_id=subcategory_id,
            city=city,
            country=country,
            images=list(images),
            status="pending",
            rejection_reason=None,
            updated_at=self._now(),
        )
        return self._ad_view(row)

    async def list_ads(
        self,
        *,
        status: str | None = None,
        owner_id: str | None = None,
        category_id: str | None = None,
        subcategory_id: str | None = None,
        q: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = list(self.ads.values())
        if status:
            rows = [row for row in rows if row["status"] == status]
        if owner_id:
            rows = [row for row in rows if row["owner_id"] == owner_id]
        if category_id:
            rows = [row for row in rows if row["category_id"] == category_id]
        if subcategory_id:
            rows = [row for row in rows if row["subcategory_id"] == subcategory_id]
        if q:
            needle = q.lower()
            rows = [row for row in rows if needle in row["title"].lower() or needle in row["description"].lower()]
        rows.sort(key=lambda row: row["id"])
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [self._ad_view(row) for row in rows]

    # moderation

    async def record_moderation_decision(
        self,
        *,
        ad_id: str,
        moderator_id: str,
        status: str,
        reason: str | None,
        clear_rejection_reason: bool,
    ) -> dict[str, Any]:
        row = self.ads.get(ad_id)
        if row is None:
            raise NotFoundError("Ad not found")
        now = self._now()
        row["status"] = status
        if status == "rejected":
            row["rejection_reason"] = reason
        elif clear_rejection_reason:
            row["rejection_reason"] = None
        row["updated_at"] = now
        record = {
            "id": str(uuid.uuid4()),
            "ad_id": ad_id,
            "moderator_id": moderator_id,
            "status": status,
            "reason": reason,
            "created_at": now,
        }
        self.records.append(record)
        return {**record, "moderator_name": self.users.get(moderator_id, {}).get("name")}

    async def list_moderation_records(self, *, ad_id: str) -> list[dict[str, Any]]:
        if ad_id not in self.ads:
            raise NotFoundError("Ad not found")
        return [
            {**record, "moderator_name": self.users.get(record["moderator_id"], {}).get("name")}
            for record in self.records
            if record["ad_id"] == ad_id
        ]

    # categories

    async def list_categories(self) -> list[dict[str, Any]]:
        return sorted((dict(row) for row in self.categories.values()), key=lambda row: row["name"])

    async def create_category(self, *, name: str) -> dict[str, Any]:
        if any(row["name"] == name for row in self.categories.values()):
            raise ConflictError("Category already exists")
        category, _ = self.seed_category(name)
        return category

    async def rename_category(self, *, category_id: str, name: str) -> dict[str, Any]:
        row = self.categories.get(category_id)
        if row is None:
            raise NotFoundError("Category not found")
        if any(other["name"] == name and other_id != category_id for other_id, other in self.categories.items()):
            raise ConflictError("A category with this name already exists")
        row.update(name=name, updated_at=self._now())
        return dict(row)

    async def delete_category(self, *, category_id: str) -> int:
        if category_id not in self.categories:
            raise NotFoundError("Category not found")
        child_ids = [sub_id for sub_id, row in self.subcategories.items() if row["category_id"] == category_id]
        for ad in self.ads.values():
            if ad["subcategory_id"] in child_ids:
                ad["subcategory_id"] = None
            if ad["category_id"] == category_id:
                ad["category_id"] = None
        for sub_id in child_ids:
            del self.subcategories[sub_id]
        del self.categories[category_id]
        return len(child_ids)

    # subcategories

    async def list_subcategories(self, *, category_id: str | None = None) -> list[dict[str, Any]]:
        rows = [row for row in self.subcategories.values() if category_id is None or row["category_id"] == category_id]
        return [self._subcategory_view(row) for row in sorted(rows, key=lambda row: row["name"])]

    async def get_subcategory(self, subcategory_id: str) -> dict[str, Any]:
        row = self.subcategories.get(subcategory_id)
        if row is None:
            raise NotFoundError("Subcategory not found")
        return self._subcategory_view(row)

    async def create_subcategory(self, *, name: str, category_id: str) -> dict[str, Any]:
        if category_id not in self.categories:
            raise NotFoundError("Category not found")
        if any(row["name"] == name and row["category_id"] == category_id for row in self.subcategories.values()):
            raise ConflictError("Subcategory already exists")
        now = self._now()
        row = {"id": str(uuid.uuid4()), "name": name, "category_id": category_id, "created_at": now, "updated_at": now}
        self.subcategories[row["id"]] = row
        return self._subcategory_view(row)

    async def rename_subcategory(self, *, subcategory_id: str, name: str) -> dict[str, Any]:
        row = self.subcategories.get(subcategory_id)
        if row is None:
            raise NotFoundError("Subcategory not found")
        row.update(name=name, updated_at=self._now())
        return self._subcategory_view(row)

    async def delete_subcategory(self, *, subcategory_id: str) -> None:
        if subcategory_id not in self.subcategories:
            raise NotFoundError("Subcategory not found")
        for ad in self.ads.values():
            if ad["subcategory_id"] == subcategory_id:
                ad["subcategory_id"] = None
        del self.subcategories[subcategory_id]

    def _ad_view(self, row: dict[str, Any]) -> dict[str, Any]:
        owner = self.users.get(row["owner_id"], {})
        category = self.categories.get(row["category_id"])
        subcategory = self.subcategories.get(row["subcategory_id"])
        return {
            "id": row["id"],
            "owner_id": row["owner_id"],
            "owner": {"id": row["owner_id"], "name": owner.get("name", "user"), "email": owner.get("email")},
            "title": row["title"],
            "description": row["description"],
            "price": float(row["price"]),
            "location": {"city": row["city"], "country": row["country"]},
            "category": {"id": category["id"], "name": category["name"]} if category else None,
            "subcategory": {"id": subcategory["id"], "name": subcategory["name"]} if subcategory else None,
            "images": list(row["images"]),
            "status": row["status"],
            "rejection_reason": row["rejection_reason"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    def _subcategory_view(self, row: dict[str, Any]) -> dict[str, Any]:
        category = self.categories[row["category_id"]]
        return {
            "id": row["id"],
            "name": row["name"],
            "category": {"id": category["id"], "name": category["name"]},
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }


class FakeImageUploader:
    def __init__(self, *, fail_on_call: int | None = None) -> None:
        self.fail_on_call = fail_on_call
        self.uploaded: list[str] = []
        self.calls = 0

    async def upload(self, data: bytes, *, filename: str | None = None) -> str:
        self.calls += 1
        if self.fail_on_call is not None and self.calls >= self.fail_on_call:
            raise ImageUploadError("image upload failed")
        url = f"https://res.cloudinary.com/demo/image/upload/classifieds/{self.calls}-{filename or 'upload'}"
        self.uploaded.append(url)
        return url


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def uploader() -> FakeImageUploader:
    return FakeImageUploader()


@pytest.fixture
def seller() -> Principal:
    return Principal.for_role(SELLER_ID, "user", email="seller@example.com", name="Sam Seller")


@pytest.fixture
def other_seller() -> Principal:
    return Principal.for_role(OTHER_SELLER_ID, "user", email="buyer@example.com")


@pytest.fixture
def moderator() -> Principal:
    return Principal.for_role(MODERATOR_ID, "moderator", email="moderator@example.com", name="Morgan Moderator")


@pytest.fixture
def client(
    monkeypatch: pytest.MonkeyPatch,
    repository: FakeRepository,
    uploader: FakeImageUploader,
) -> TestClient:
    os.environ["CM_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["CM_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    async def _fake_fetch(*, token: str, **_: Any) -> dict[str, Any]:
        user = SUPABASE_USERS.get(token)
        if user is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_image_uploader] = lambda: uploader

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    os.environ.pop("CM_SUPABASE_URL", None)
    os.environ.pop("CM_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()
