from __future__ import annotations

import logging
from typing import Any

from classifieds.core.auth import Action, Principal, authorize
from classifieds.services.errors import ValidationError

logger = logging.getLogger(__name__)


class CategoryService:
    """Category and subcategory management. Reads are public, writes need a moderator."""

    def __init__(self, repository: Any) -> None:
        self.repository = repository

    async def list_categories(self) -> list[dict[str, Any]]:
        return await self.repository.list_categories()

    async def create_category(self, name: str | None, principal: Principal | None) -> dict[str, Any]:
        authorize(principal, Action.MANAGE_CATALOG)
        category = await self.repository.create_category(name=_require_name(name, "Category name is required"))
        logger.info("category created category_id=%s", category["id"])
        return category

    async def rename_category(self, category_id: str, name: str | None, principal: Principal | None) -> dict[str, Any]:
        authorize(principal, Action.MANAGE_CATALOG)
        return await self.repository.rename_category(
            category_id=category_id,
            name=_require_name(name, "Category name is required"),
        )

    async def delete_category(self, category_id: str, principal: Principal | None) -> int:
        authorize(principal, Action.MANAGE_CATALOG)
        removed = await self.repository.delete_category(category_id=category_id)
        logger.info("category deleted category_id=%s subcategories_removed=%s", category_id, removed)
        return removed

    async def list_subcategories(self, category_id: str | None = None) -> list[dict[str, Any]]:
        normalized = (category_id or "").strip() or None
        return await self.repository.list_subcategories(category_id=normalized)

    async def create_subcategory(
        self,
        name: str | None,
        category_id: str | None,
        principal: Principal | None,
    ) -> dict[str, Any]:
        authorize(principal, Action.MANAGE_CATALOG)
        normalized_name = (name or "").strip()
        normalized_category_id = (category_id or "").strip()
        if not normalized_name or not normalized_category_id:
            missing = [field for field, value in (("name", normalized_name), ("categoryId", normalized_category_id)) if not value]
            raise ValidationError("Subcategory name and category ID are required", missing)
        subcategory = await self.repository.create_subcategory(name=normalized_name, category_id=normalized_category_id)
        logger.info(
            "subcategory created subcategory_id=%s category_id=%s",
            subcategory["id"],
            normalized_category_id,
        )
        return subcategory

    async def rename_subcategory(
        self,
        subcategory_id: str,
        name: str | None,
        principal: Principal | None,
    ) -> dict[str, Any]:
        authorize(principal, Action.MANAGE_CATALOG)
        return await self.repository.rename_subcategory(
            subcategory_id=subcategory_id,
            name=_require_name(name, "Subcategory name is required"),
        )

    async def delete_subcategory(self, subcategory_id: str, principal: Principal | None) -> None:
        authorize(principal, Action.MANAGE_CATALOG)
        await self.repository.delete_subcategory(subcategory_id=subcategory_id)
        logger.info("subcategory deleted subcategory_id=%s", subcategory_id)


def _require_name(name: str | None, message: str) -> str:
    stripped = (name or "").strip()
    if not stripped:
        raise ValidationError(message, ["name"])
    return stripped
