from __future__ import annotations

from typing import Any

from classifieds.core.auth import Principal


async def sync_profile(repository: Any, principal: Principal) -> None:
    """Upsert the caller's profile row so ownership and audit references resolve."""
    name = principal.name or (principal.email.split("@", maxsplit=1)[0] if principal.email else None) or "user"
    await repository.ensure_user(
        user_id=principal.user_id,
        name=name,
        email=principal.email,
        role=principal.role,
    )
