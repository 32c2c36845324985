from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from classifieds.core.config import Settings
from classifieds.services.errors import ConflictError, NotFoundError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

AD_SELECT_SQL = """
    select
      a.id::text as id,
      a.user_id::text as owner_id,
      u.name as owner_name,
      u.email as owner_email,
      a.title,
      a.description,
      a.price,
      a.city,
      a.country,
      a.images,
      a.status::text as status,
      a.rejection_reason,
      c.id::text as category_id,
      c.name as category_name,
      s.id::text as subcategory_id,
      s.name as subcategory_name,
      a.created_at,
      a.updated_at
    from ads a
    join users u on u.id = a.user_id
    left join categories c on c.id = a.category_id
    left join subcategories s on s.id = a.subcategory_id
"""

SUBCATEGORY_SELECT_SQL = """
    select
      s.id::text as id,
      s.name,
      c.id::text as category_id,
      c.name as category_name,
      s.created_at,
      s.updated_at
    from subcategories s
    join categories c on c.id = s.category_id
"""

_INVALID_ID_ERRORS = (pg_exc.InvalidTextRepresentationError, asyncpg.DataError)


class PostgresRepository:
    """Persistence gateway over one asyncpg pool owned by the application lifespan."""

    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> PostgresRepository:
        return cls(
            database_url=settings.database_url,
            min_pool_size=settings.database_pool_min_size,
            max_pool_size=settings.database_pool_max_size,
        )

    async def open(self) -> None:
        await self._get_pool()

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # users

    async def ensure_user(self, *, user_id: str, name: str, email: str | None, role: str) -> None:
        pool = await self._get_pool()
        try:
            await pool.execute(
                """
                insert into users (id, name, email, role)
                values ($1::uuid, $2, $3, $4::user_role)
                on conflict (id) do update
                set
                  name = excluded.name,
                  email = coalesce(excluded.email, users.email),
                  role = excluded.role
                """,
                user_id,
                name,
                email,
                role,
            )
        except pg_exc.UniqueViolationError as exc:
            raise ConflictError("email is already registered to another user") from exc
        except _INVALID_ID_ERRORS as exc:
            raise ValidationError("invalid user id", ["user"]) from exc

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
        pool = await self._get_pool()
        try:
            ad_id = await pool.fetchval(
                """
                insert into ads (
                  user_id,
                  title,
                  description,
                  price,
                  category_id,
                  subcategory_id,
                  city,
                  country,
                  images,
                  status
                )
                values ($1::uuid, $2, $3, $4, $5::uuid, $6::uuid, $7, $8, $9::text[], 'pending')
                returning id::text
                """,
                owner_id,
                title,
                description,
                price,
                category_id,
                subcategory_id,
                city,
                country,
                images,
            )
        except pg_exc.ForeignKeyViolationError as exc:
            raise ValidationError("category or subcategory does not exist", ["category", "subcategory"]) from exc
        except _INVALID_ID_ERRORS as exc:
            raise ValidationError("invalid category or subcategory id", ["category", "subcategory"]) from exc
        return str(ad_id)

    async def get_ad(self, ad_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(f"{AD_SELECT_SQL} where a.id = $1::uuid", ad_id)
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Ad not found") from exc
        if not row:
            raise NotFoundError("Ad not found")
        return self._ad_row_to_dict(row)

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
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                updated_id = await conn.fetchval(
                    """
                    update ads
                    set
                      title = $2,
                      description = $3,
                      price = $4,
                      category_id = $5::uuid,
                      subcategory_id = $6::uuid,
                      city = $7,
                      country = $8,
                      images = $9::text[],
                      status = 'pending',
                      rejection_reason = null
                    where id = $1::uuid
                    returning id::text
                    """,
                    ad_id,
                    title,
                    description,
                    price,
                    category_id,
                    subcategory_id,
                    city,
                    country,
                    images,
                )
                if not updated_id:
                    raise NotFoundError("Ad not found")
                row = await conn.fetchrow(f"{AD_SELECT_SQL} where a.id = $1::uuid", ad_id)
        except pg_exc.ForeignKeyViolationError as exc:
            raise ValidationError("category or subcategory does not exist", ["category", "subcategory"]) from exc
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Ad not found") from exc
        if not row:
            raise NotFoundError("Ad not found")
        return self._ad_row_to_dict(row)

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
        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if status:
            conditions.append(f"a.status = {bind(status)}::ad_status")
        if owner_id:
            conditions.append(f"a.user_id = {bind(owner_id)}::uuid")
        if category_id:
            conditions.append(f"a.category_id = {bind(category_id)}::uuid")
        if subcategory_id:
            conditions.append(f"a.subcategory_id = {bind(subcategory_id)}::uuid")
        if q:
            token = bind(f"%{self._escape_like(q)}%")
            conditions.append(f"(a.title ilike {token} escape '\\' or a.description ilike {token} escape '\\')")

        where_sql = " and ".join(conditions) if conditions else "true"
        limit_sql = f"limit {bind(limit)}" if limit is not None else ""

        try:
            rows = await pool.fetch(
                f"""
                {AD_SELECT_SQL}
                where {where_sql}
                order by a.created_at desc, a.id asc
                {limit_sql}
                """,
                *params,
            )
        except _INVALID_ID_ERRORS:
            # A malformed reference id cannot match any stored ad.
            return []
        return [self._ad_row_to_dict(row) for row in rows]

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
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    existing = await conn.fetchrow(
                        """
                        select id::text as id, status::text as status
                        from ads
                        where id = $1::uuid
                        for update
                        """,
                        ad_id,
                    )
                    if not existing:
                        raise NotFoundError("Ad not found")

                    if status == "rejected":
                        await conn.execute(
                            """
                            update ads
                            set status = 'rejected', rejection_reason = $2
                            where id = $1::uuid
                            """,
                            ad_id,
                            reason,
                        )
                    else:
                        await conn.execute(
                            """
                            update ads
                            set
                              status = 'approved',
                              rejection_reason = case when $2 then null else rejection_reason end
                            where id = $1::uuid
                            """,
                            ad_id,
                            clear_rejection_reason,
                        )

                    row = await conn.fetchrow(
                        """
                        with inserted as (
                          insert into moderation_records (ad_id, moderator_id, status, reason)
                          values ($1::uuid, $2::uuid, $3::moderation_decision, $4)
                          returning id, ad_id, moderator_id, status, reason, created_at
                        )
                        select
                          i.id::text as id,
                          i.ad_id::text as ad_id,
                          i.moderator_id::text as moderator_id,
                          u.name as moderator_name,
                          i.status::text as status,
                          i.reason,
                          i.created_at
                        from inserted i
                        left join users u on u.id = i.moderator_id
                        """,
                        ad_id,
                        moderator_id,
                        status,
                        reason,
                    )
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Ad not found") from exc

        logger.info(
            "moderation decision ad_id=%s from_status=%s to_status=%s moderator_id=%s",
            ad_id,
            existing["status"],
            status,
            moderator_id,
        )
        return self._moderation_record_row_to_dict(row)

    async def list_moderation_records(self, *, ad_id: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        try:
            exists = await pool.fetchval("select 1 from ads where id = $1::uuid", ad_id)
            if not exists:
                raise NotFoundError("Ad not found")
            rows = await pool.fetch(
                """
                select
                  mr.id::text as id,
                  mr.ad_id::text as ad_id,
                  mr.moderator_id::text as moderator_id,
                  u.name as moderator_name,
                  mr.status::text as status,
                  mr.reason,
                  mr.created_at
                from moderation_records mr
                left join users u on u.id = mr.moderator_id
                where mr.ad_id = $1::uuid
                order by mr.created_at asc, mr.id asc
                """,
                ad_id,
            )
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Ad not found") from exc
        return [self._moderation_record_row_to_dict(row) for row in rows]

    # categories

    async def list_categories(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select id::text as id, name, created_at, updated_at
            from categories
            order by name asc
            """
        )
        return [self._category_row_to_dict(row) for row in rows]

    async def create_category(self, *, name: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into categories (name)
                values ($1)
                returning id::text as id, name, created_at, updated_at
                """,
                name,
            )
        except pg_exc.UniqueViolationError as exc:
            raise ConflictError("Category already exists") from exc
        return self._category_row_to_dict(row)

    async def rename_category(self, *, category_id: str, name: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                update categories
                set name = $2
                where id = $1::uuid
                returning id::text as id, name, created_at, updated_at
                """,
                category_id,
                name,
            )
        except pg_exc.UniqueViolationError as exc:
            raise ConflictError("A category with this name already exists") from exc
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Category not found") from exc
        if not row:
            raise NotFoundError("Category not found")
        return self._category_row_to_dict(row)

    async def delete_category(self, *, category_id: str) -> int:
        """Delete a category and all of its subcategories in one transaction.

        Ads filed under the category stay in place; the foreign keys null
        out their category and subcategory references. Returns the number
        of subcategories removed alongside the category.
        """
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        "select 1 from categories where id = $1::uuid for update",
                        category_id,
                    )
                    if not exists:
                        raise NotFoundError("Category not found")
                    deleted = await conn.execute("delete from subcategories where category_id = $1::uuid", category_id)
                    await conn.execute("delete from categories where id = $1::uuid", category_id)
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Category not found") from exc
        return self._affected_rows(deleted)

    # subcategories

    async def list_subcategories(self, *, category_id: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                {SUBCATEGORY_SELECT_SQL}
                where ($1::uuid is null or s.category_id = $1::uuid)
                order by s.name asc
                """,
                category_id,
            )
        except _INVALID_ID_ERRORS:
            return []
        return [self._subcategory_row_to_dict(row) for row in rows]

    async def get_subcategory(self, subcategory_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(f"{SUBCATEGORY_SELECT_SQL} where s.id = $1::uuid", subcategory_id)
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Subcategory not found") from exc
        if not row:
            raise NotFoundError("Subcategory not found")
        return self._subcategory_row_to_dict(row)

    async def create_subcategory(self, *, name: str, category_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                exists = await conn.fetchval("select 1 from categories where id = $1::uuid", category_id)
                if not exists:
                    raise NotFoundError("Category not found")
                subcategory_id = await conn.fetchval(
                    """
                    insert into subcategories (name, category_id)
                    values ($1, $2::uuid)
                    returning id::text
                    """,
                    name,
                    category_id,
                )
                row = await conn.fetchrow(f"{SUBCATEGORY_SELECT_SQL} where s.id = $1::uuid", subcategory_id)
        except pg_exc.UniqueViolationError as exc:
            raise ConflictError("Subcategory already exists") from exc
        except pg_exc.ForeignKeyViolationError as exc:
            raise NotFoundError("Category not found") from exc
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Category not found") from exc
        return self._subcategory_row_to_dict(row)

    async def rename_subcategory(self, *, subcategory_id: str, name: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                updated_id = await conn.fetchval(
                    """
                    update subcategories
                    set name = $2
                    where id = $1::uuid
                    returning id::text
                    """,
                    subcategory_id,
                    name,
                )
                if not updated_id:
                    raise NotFoundError("Subcategory not found")
                row = await conn.fetchrow(f"{SUBCATEGORY_SELECT_SQL} where s.id = $1::uuid", subcategory_id)
        except pg_exc.UniqueViolationError as exc:
            raise ConflictError("A subcategory with this name already exists in this category") from exc
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Subcategory not found") from exc
        return self._subcategory_row_to_dict(row)

    async def delete_subcategory(self, *, subcategory_id: str) -> None:
        pool = await self._get_pool()
        try:
            status = await pool.execute("delete from subcategories where id = $1::uuid", subcategory_id)
        except _INVALID_ID_ERRORS as exc:
            raise NotFoundError("Subcategory not found") from exc
        if self._affected_rows(status) == 0:
            raise NotFoundError("Subcategory not found")

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise UpstreamError("CM_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
        except Exception as exc:  # pragma: no cover - depends on environment
            logger.exception("database pool creation failed")
            raise UpstreamError("database unavailable") from exc
        logger.info("database pool established min_size=%s max_size=%s", self.min_pool_size, self.max_pool_size)
        return self._pool

    @staticmethod
    def _escape_like(value: str) -> str:
        return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

    @staticmethod
    def _affected_rows(command_status: str) -> int:
        try:
            return int(command_status.rsplit(" ", maxsplit=1)[-1])
        except (AttributeError, ValueError):
            return 0

    @staticmethod
    def _ad_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        category = None
        if row["category_id"]:
            category = {"id": row["category_id"], "name": row["category_name"]}
        subcategory = None
        if row["subcategory_id"]:
            subcategory = {"id": row["subcategory_id"], "name": row["subcategory_name"]}
        return {
            "id": row["id"],
            "owner_id": row["owner_id"],
            "owner": {"id": row["owner_id"], "name": row["owner_name"], "email": row["owner_email"]},
            "title": row["title"],
            "description": row["description"],
            "price": float(row["price"]),
            "location": {"city": row["city"], "country": row["country"]},
            "category": category,
            "subcategory": subcategory,
            "images": list(row["images"] or []),
            "status": row["status"],
            "rejection_reason": row["rejection_reason"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _category_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "name": row["name"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _subcategory_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "name": row["name"],
            "category": {"id": row["category_id"], "name": row["category_name"]},
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _moderation_record_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "ad_id": row["ad_id"],
            "moderator_id": row["moderator_id"],
            "moderator_name": row["moderator_name"],
            "status": row["status"],
            "reason": row["reason"],
            "created_at": row["created_at"],
        }
