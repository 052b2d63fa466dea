"""
Identity provider client - exchanges a bearer token for {id, email}.

Backed by the Supabase auth REST endpoint (GET /auth/v1/user).
"""
import os
import logging
from typing import Any, Dict, Optional

import httpx

from utils.errors import ConfigurationError, Unauthorized

logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")


class SupabaseIdentityProvider:
    """Resolves session tokens against the provider's user endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.base_url = (base_url if base_url is not None else SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else (SUPABASE_SERVICE_ROLE_KEY or SUPABASE_ANON_KEY)
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def fetch_user(self, token: str) -> Dict[str, Any]:
        if not self.configured:
            raise ConfigurationError("Authentication not configured.")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/auth/v1/user",
                    headers={
                        "Authorization": f"Bearer {token}",
                        "apikey": self.api_key,
                    },
                )
        except httpx.HTTPError as e:
            logger.warning(f"Identity provider unreachable: {e}")
            raise Unauthorized("Unable to verify session.")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            message = data.get("message") if isinstance(data, dict) else None
            raise Unauthorized(message or "Invalid auth token.")
        return data if isinstance(data, dict) else {}


identity_provider = SupabaseIdentityProvider()
