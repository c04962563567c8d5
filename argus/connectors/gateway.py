"""ARGUS — Gateway Interfaces.

The recovery core never builds Meta requests itself. It talks to these two
narrow interfaces; `MetaClient` implements the gateway, and
`SettingsCredentialProvider` resolves tokens from configuration.
"""

from typing import Any, Dict, Optional, Protocol

from argus.config import settings


class EntityGateway(Protocol):
    """Creates, fetches and updates campaigns / ad sets / ads remotely.

    Creation is not idempotent: if a success response is lost, re-running
    `create_adset` / `create_ad` creates a duplicate.
    """

    async def create_adset(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    async def create_ad(self, params: Dict[str, Any]) -> Dict[str, Any]: ...

    async def fetch_entity(self, entity_id: str, fields: str) -> Dict[str, Any]: ...

    async def update_entity(self, entity_id: str, params: Dict[str, Any]) -> Dict[str, Any]: ...

    async def close(self) -> None: ...


class CredentialProvider(Protocol):
    """Returns a usable Meta access token for a user, or None."""

    def get_access_token(self, user_id: str) -> Optional[str]: ...


class SettingsCredentialProvider:
    """Single-account deployments: every user shares the configured token."""

    def get_access_token(self, user_id: str) -> Optional[str]:
        return settings.meta_access_token or None
