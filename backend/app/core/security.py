"""Admin credential checks"""
import hmac
from typing import Optional

from fastapi import Header, HTTPException

from app.core.config import settings
from app.core.logging import security_logger


def is_admin_key_valid(credential: Optional[str]) -> bool:
    """Compare a supplied credential with ADMIN_KEY in constant time.

    An unset ADMIN_KEY never matches, so an unconfigured deployment
    cannot be used to mint vouchers.
    """
    expected = settings.ADMIN_KEY
    if not expected or not credential:
        return False
    return hmac.compare_digest(credential.encode("utf-8"), expected.encode("utf-8"))


def require_admin_key(x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")) -> str:
    """Dependency: Require the admin key header on reporting endpoints"""
    if not is_admin_key_valid(x_admin_key):
        security_logger.warning("Rejected admin request with invalid or missing X-Admin-Key")
        raise HTTPException(401, "Admin access required")
    return x_admin_key
