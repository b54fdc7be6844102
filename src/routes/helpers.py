"""
Shared helpers for API routes.
Contains: error type, caller authentication, public profile shaping.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

log = logging.getLogger("api")

PUBLIC_PROFILE_FIELDS = (
    "id", "full_name", "username", "email", "profile_picture", "bio", "trust_stars",
)
TRUST_FIELDS = ("caution_count", "safe_count")


class FunctionError(Exception):
    """Handler failure rendered as ``{"error": message}`` with ``status_code``."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _require_user(client: Any) -> Dict[str, Any]:
    user = client.auth.me()
    if not user:
        raise FunctionError(401, "Unauthorized")
    return user


def _public_profile(user: Dict[str, Any], with_trust: bool = False) -> Dict[str, Any]:
    fields = PUBLIC_PROFILE_FIELDS + (TRUST_FIELDS if with_trust else ())
    return {f: user.get(f) for f in fields}


def _first(rows: Optional[list]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


def _internal_error(e: Exception, context: str) -> FunctionError:
    log.error("%s: %s", context, e, exc_info=True)
    return FunctionError(500, str(e))
