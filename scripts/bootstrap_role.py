#!/usr/bin/env python3
"""Emit deterministic SQL that grants a lifecycle role to an existing user."""

from __future__ import annotations

import argparse

PROFILE_KEYS = {
    "hospital": "hospital_profile_id",
    "doctor": "doctor_profile_id",
}


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, role: str, email: str, profile_id: int | None) -> str:
    role_value = _quote_sql(role)
    email_value = _quote_sql(email)

    metadata = f"jsonb_build_object('role', {role_value})"
    profile_key = PROFILE_KEYS.get(role)
    if profile_key is not None:
        assert profile_id is not None
        metadata = f"jsonb_build_object('role', {role_value}, {_quote_sql(profile_key)}, {int(profile_id)})"

    return f"""-- Lifecycle role bootstrap SQL
-- Run this in a privileged Postgres session against the auth and app databases.

update users
set role = {role_value}
where email = {email_value};

update auth.users
set raw_app_meta_data = coalesce(raw_app_meta_data, '{{}}'::jsonb) || {metadata}
where email = {email_value};
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to bootstrap a lifecycle role.")
    parser.add_argument(
        "--role",
        choices=["admin", "hospital", "doctor"],
        default="admin",
        help="Role to assign in users.role and auth.users.raw_app_meta_data.role",
    )
    parser.add_argument("--email", required=True, help="Email shared by users and auth.users")
    parser.add_argument(
        "--profile-id",
        type=int,
        help="Owned hospital or doctor profile id; required for hospital and doctor roles",
    )
    args = parser.parse_args()

    if args.role in PROFILE_KEYS and args.profile_id is None:
        parser.error(f"--profile-id is required for role {args.role}")

    print(render_sql(role=args.role, email=args.email, profile_id=args.profile_id))


if __name__ == "__main__":
    main()
