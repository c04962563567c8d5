"""ARGUS — Meta API Client.

Handles authentication, transport-level retry, rate limiting, and the
create / fetch / update calls the recovery core needs.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import httpx

from argus.config import settings
from argus.core.logging import get_logger

logger = get_logger("meta.client")

META_BASE = f"{settings.meta_base_url}/{settings.meta_api_version}"
MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds



def worst_case_request_seconds() -> float:
    """Longest one `_request` can run: every attempt times out, plus backoff."""
    backoff = sum(RETRY_BASE_DELAY * 2**i for i in range(MAX_RETRIES - 1))
    return MAX_RETRIES * settings.meta_timeout_seconds + backoff


CAMPAIGN_FIELDS = (
    "id,name,objective,status,daily_budget,lifetime_budget,bid_strategy,"
    "spend_cap,special_ad_categories,buying_type"
)
ADSET_FIELDS = (
    "id,name,status,daily_budget,lifetime_budget,targeting,optimization_goal,"
    "billing_event,bid_amount,bid_strategy,promoted_object"
)
AD_FIELDS = (
    "id,name,status,adset_id,"
    "creative{id,name,body,title,object_story_spec,effective_object_story_id}"
)


class MetaAPIError(Exception):
    """Raised when Meta API returns an error."""

    def __init__(self, message: str, status_code: int = 0, error_code: int = 0):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


def _encode_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Meta expects nested objects (targeting, creative, ...) as JSON strings."""
    encoded: Dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            encoded[key] = json.dumps(value)
        elif isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = value
    return encoded


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    """The `error` object of a Meta error response; {} if there is none."""
    if not response.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        body = response.json()
    except ValueError:
        logger.warning(f"Unparseable error body from Meta (HTTP {response.status_code})")
        return {}
    error = body.get("error") if isinstance(body, dict) else None
    return error if isinstance(error, dict) else {}


class MetaClient:
    """Async HTTP client for Meta Marketing API."""

    def __init__(
        self,
        access_token: str | None = None,
        ad_account_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.access_token = access_token or settings.meta_access_token
        self.ad_account_id = ad_account_id or settings.meta_ad_account_id
        self._transport = transport
        self._retry_base_delay = retry_base_delay
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def account_path(self) -> str:
        account = self.ad_account_id
        return account if account.startswith("act_") else f"act_{account}"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=settings.meta_timeout_seconds, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] | None = None,
        data: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling."""
        params = dict(params or {})
        params["access_token"] = self.access_token

        client = await self._get_client()

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.request(method, url, params=params, data=data)

                # Rate limited
                if resp.status_code == 429:
                    wait = self._retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})"
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                return resp.json()

            except httpx.HTTPStatusError as e:
                body = _error_body(e.response)
                error_msg = body.get("message", str(e))
                error_code = body.get("code", 0)

                if attempt < MAX_RETRIES and e.response.status_code >= 500:
                    wait = self._retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Server error {e.response.status_code}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue

                raise MetaAPIError(error_msg, e.response.status_code, error_code) from e

            except httpx.RequestError as e:
                # Writes are not replayed: a lost response may hide a success
                if attempt < MAX_RETRIES and method == "GET":
                    wait = self._retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise MetaAPIError(
                    f"Connection failed after {attempt} attempt(s): {e}"
                ) from e

        raise MetaAPIError("Max retries exhausted", status_code=429)

    # ── Entity Creation ──

    async def create_adset(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Create an ad set under the configured ad account."""
        url = f"{META_BASE}/{self.account_path}/adsets"
        result = await self._request("POST", url, data=_encode_params(params))
        logger.info(
            f"Created ad set {result.get('id')}",
            extra={"entity_type": "adset", "entity_id": result.get("id")},
        )
        return result

    async def create_ad(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Create an ad; `params` must carry `adset_id` and a creative."""
        url = f"{META_BASE}/{self.account_path}/ads"
        result = await self._request("POST", url, data=_encode_params(params))
        logger.info(
            f"Created ad {result.get('id')}",
            extra={"entity_type": "ad", "entity_id": result.get("id")},
        )
        return result

    # ── Fetch / Update ──

    async def fetch_entity(self, entity_id: str, fields: str) -> Dict[str, Any]:
        """Fetch the current remote representation of any node."""
        url = f"{META_BASE}/{entity_id}"
        return await self._request("GET", url, {"fields": fields})

    async def update_entity(self, entity_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """POST field updates to an existing node."""
        url = f"{META_BASE}/{entity_id}"
        return await self._request("POST", url, data=_encode_params(params))
