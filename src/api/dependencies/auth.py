"""
Caller identity and API key dependencies.

The scheduler core never authenticates anyone; this module is the HTTP
surface's thin identity layer:
- X-API-Key is checked against API_KEY when API_AUTH_ENABLED=true
- X-User-Id names the submitter/requester ("anonymous" when absent)
"""

import os
from typing import Optional

from fastapi import Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

ANONYMOUS = "anonymous"

# Read once at import; tests reload this module after changing the env
API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false").lower() == "true"
API_KEY = os.getenv("API_KEY", "")

api_key_header = APIKeyHeader(
    name="X-API-Key",
    auto_error=False,
    description="Scheduler API key (required when API_AUTH_ENABLED=true)",
)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> Optional[str]:
    """
    Reject requests without the configured API key.

    Raises:
        HTTPException: 401 if auth is enabled and the key is missing or wrong
    """
    if not API_AUTH_ENABLED:
        return None

    if not api_key or api_key != API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key" if not api_key else "Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key


async def get_requester(
    x_user_id: Optional[str] = Header(default=None, description="Submitter identity"),
) -> str:
    """Identity recorded as submitter, or checked by the cancel policy."""
    requester = (x_user_id or "").strip()
    return requester or ANONYMOUS
