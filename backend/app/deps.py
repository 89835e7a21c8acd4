from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from inboxie.app.run import Services, build_services, resolve_user
from inboxie.config.settings import Settings, load_settings
from inboxie.errors import AuthenticationFailed
from inboxie.models import UserAccount


@dataclass
class RequestContext:
    settings: Settings
    services: Services
    user: UserAccount


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationFailed("Authentication required")
    return token.strip()


def get_services(
    token: str = Depends(bearer_token),
    settings: Settings = Depends(get_settings),
) -> Services:
    return build_services(settings, access_token=token)


def get_context(
    services: Services = Depends(get_services),
    settings: Settings = Depends(get_settings),
) -> RequestContext:
    return RequestContext(settings=settings, services=services, user=resolve_user(services))
