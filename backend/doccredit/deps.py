"""
Shared request dependencies: caller identity and the super-admin gate.

Identity is authenticated upstream; this service trusts the forwarded
X-School-Id / X-User-Id headers.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException

from .platform.config import settings
from .shared.principal import Principal

SUPER_ADMIN_ACTOR = "super-admin"


def get_current_principal(
    x_school_id: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> Principal:
    school_id = (x_school_id or "").strip()
    if not school_id:
        raise HTTPException(status_code=401, detail="Missing school identity")
    user_id: Optional[int] = None
    if x_user_id is not None and x_user_id.strip():
        try:
            user_id = int(x_user_id.strip())
        except ValueError:
            raise HTTPException(status_code=422, detail="X-User-Id must be an integer")
    return Principal(school_id=school_id, user_id=user_id)


def require_super_admin(x_super_admin_key: Optional[str] = Header(default=None)) -> str:
    expected = settings.SUPER_ADMIN_KEY or ""
    if not expected:
        raise HTTPException(status_code=503, detail="Super admin access is not configured")
    if not x_super_admin_key or not hmac.compare_digest(x_super_admin_key.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="Super admin access required")
    return SUPER_ADMIN_ACTOR
