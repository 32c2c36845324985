#!/usr/bin/env python3
"""Emit deterministic SQL that grants (or revokes) the moderator role."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, role: str, user_id: str | None, email: str | None) -> str:
    role_value = _quote_sql(role)

    if user_id:
        auth_where = f"id = {_quote_sql(user_id)}::uuid"
        profile_where = auth_where
    elif email:
        normalized = _quote_sql(email.strip().lower())
        auth_where = f"lower(email) = {normalized}"
        profile_where = f"email = {normalized}"
    else:
        raise ValueError("either user_id or email is required")

    return f"""-- Classifieds role bootstrap SQL
-- Run this in the Supabase SQL editor (or equivalent privileged Postgres session).
-- The role takes effect on the user's next request; the profile row is refreshed too.

update auth.users
set raw_app_meta_data = coalesce(raw_app_meta_data, '{{}}'::jsonb) || jsonb_build_object('role', {role_value})
where {auth_where};

update users
set role = {role_value}::user_role
where {profile_where};
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to assign a classifieds role to a Supabase user.")
    parser.add_argument(
        "--role",
        choices=["user", "moderator"],
        default="moderator",
        help="Role to assign in auth.users.raw_app_meta_data.role",
    )
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email")
    args = parser.parse_args()

    try:
        sql = render_sql(role=args.role, user_id=args.user_id, email=args.email)
    except ValueError as exc:
        parser.error(str(exc))
    print(sql)


if __name__ == "__main__":
    main()
