from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from app.core.auth import Actor, ActorRole, build_actor
from app.core.config import Settings, get_settings

PROFILE_ID_KEYS: dict[ActorRole, str] = {
    ActorRole.HOSPITAL: "hospital_profile_id",
    ActorRole.DOCTOR: "doctor_profile_id",
}


async def get_actor(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Actor:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.auth_url:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth provider is not configured",
        )

    user = await _fetch_auth_user(
        auth_url=settings.auth_url,
        auth_api_key=settings.auth_api_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = _coerce_int(user.get("id"))
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    role, profile_id = _resolve_role_and_profile(user)
    try:
        return build_actor(user_id=user_id, role=role, profile_id=profile_id)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


async def _fetch_auth_user(
    *,
    auth_url: str,
    auth_api_key: str | None,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {"Authorization": f"Bearer {token}"}
    if auth_api_key:
        headers["apikey"] = auth_api_key
    url = f"{auth_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth verification failed",
        )

    return response.json()


def _resolve_role_and_profile(user: dict[str, Any]) -> tuple[str, int | None]:
    # Roles and owned profiles are trusted only from server-managed metadata.
    app_metadata = user.get("app_metadata")
    if not isinstance(app_metadata, dict):
        return "", None

    role = app_metadata.get("role")
    if not isinstance(role, str) or not role:
        return "", None

    try:
        profile_key = PROFILE_ID_KEYS.get(ActorRole(role))
    except ValueError:
        profile_key = None
    profile_id = _coerce_int(app_metadata.get(profile_key)) if profile_key else None
    return role, profile_id


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
