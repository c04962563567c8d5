"""ARGUS — Shared Route Dependencies.

Tests swap any of these out through `app.dependency_overrides`.
"""

from typing import AsyncIterator, Callable

from fastapi import Depends, Header, HTTPException, Request

from argus.connectors.gateway import CredentialProvider, EntityGateway, SettingsCredentialProvider
from argus.connectors.meta.client import MetaClient
from argus.core.errors import AuthRequired
from argus.database import engine
from argus.jobs.progress import JobProgressStore
from argus.repositories.failure_store import FailureStore
from argus.tracker.failure_tracker import FailureTracker

GatewayFactory = Callable[[str], EntityGateway]


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Authentication is handled upstream; it forwards the user as a header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


def get_tracker() -> FailureTracker:
    return FailureTracker(FailureStore(engine))


def get_credentials() -> CredentialProvider:
    return SettingsCredentialProvider()


def get_gateway_factory() -> GatewayFactory:
    return lambda token: MetaClient(access_token=token)


def require_access_token(credentials: CredentialProvider, user_id: str) -> str:
    token = credentials.get_access_token(user_id)
    if not token:
        raise AuthRequired("Meta authentication required. Please reconnect your account.")
    return token


def get_access_token(
    user_id: str = Depends(get_user_id),
    credentials: CredentialProvider = Depends(get_credentials),
) -> str:
    return require_access_token(credentials, user_id)


async def get_gateway(
    token: str = Depends(get_access_token),
    factory: GatewayFactory = Depends(get_gateway_factory),
) -> AsyncIterator[EntityGateway]:
    """Gateway scoped to one request; closed afterwards."""
    gateway = factory(token)
    try:
        yield gateway
    finally:
        await gateway.close()


def get_job_store(request: Request) -> JobProgressStore:
    return request.app.state.job_store
