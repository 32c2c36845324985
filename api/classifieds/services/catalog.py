from __future__ import annotations

from typing import Any


class CatalogService:
    """Public listing queries. Only approved ads are ever returned."""

    def __init__(self, repository: Any, *, default_limit: int = 20, max_limit: int = 100) -> None:
        self.repository = repository
        self.default_limit = default_limit
        self.max_limit = max(1, max_limit)

    async def search(
        self,
        *,
        category_id: str | None = None,
        subcategory_id: str | None = None,
        search_text: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        resolved_limit = self.default_limit if limit is None else limit
        resolved_limit = min(max(1, resolved_limit), self.max_limit)
        return await self.repository.list_ads(
            status="approved",
            category_id=_blank_to_none(category_id),
            subcategory_id=_blank_to_none(subcategory_id),
            q=_blank_to_none(search_text),
            limit=resolved_limit,
        )


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
