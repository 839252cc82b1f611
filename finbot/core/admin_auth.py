"""
Shared-secret guards for operator routes.

- Subscription management: `X-Admin-Key: <ADMIN_KEY>`
- Scheduled triggers: `Authorization: Bearer <CRON_SECRET>` (open when
  CRON_SECRET is unset, e.g. local development)
"""
import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from finbot.core.config import settings
from finbot.core.errors import AppError, AuthError


@dataclass
class AdminActor:
    """Authenticated operator identity (derived from the key, never the key itself)."""
    actor_id: str
    auth_mechanism: str = "x_admin_key"


def _matches(provided: str, expected: str) -> bool:
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: require a valid X-Admin-Key.

    Usage:
        @router.get("/v1/admin/webhooks")
        def list_webhooks(actor: AdminActor = Depends(require_admin)):
            ...
    """
    expected = settings.ADMIN_KEY
    if not expected:
        raise AppError(
            "Admin authentication not configured",
            code="admin_auth_unconfigured",
            status_code=503,
        )

    provided = request.headers.get("X-Admin-Key", "").strip()
    if not provided or not _matches(provided, expected):
        raise AuthError("Unauthorized: invalid or missing admin credentials", code="admin_unauthorized")

    key_hash = hashlib.sha256(provided.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"key:{key_hash}")


def require_cron_secret(request: Request) -> Optional[str]:
    """FastAPI dependency for scheduled triggers."""
    expected = settings.CRON_SECRET
    if not expected:
        return None

    auth_header = request.headers.get("Authorization", "")
    token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else ""
    if not token or not _matches(token, expected):
        raise AuthError("Unauthorized: invalid or missing cron secret", code="cron_unauthorized")
    return token
