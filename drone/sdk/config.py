"""Client configuration and credential sources for the Drone SDK."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from jose import JWTError, jwt
from pydantic import BaseModel, Field, field_validator

ENV_SERVER = "DRONE_SERVER"
ENV_TOKEN = "DRONE_TOKEN"
ENV_CSRF = "DRONE_CSRF"


class DroneConfig(BaseModel):
    """Connection settings shared by every request and stream of a client."""

    # Base URL; empty means same-origin (relative paths)
    server: str = Field(default="")
    token: Optional[str] = Field(default=None)
    csrf: Optional[str] = Field(default=None)

    class Config:
        frozen = True

    @field_validator("server", mode="before")
    @classmethod
    def _empty_server(cls, value: Any) -> str:
        if not value:
            return ""
        return str(value)

    @field_validator("token", "csrf", mode="before")
    @classmethod
    def _empty_as_none(cls, value: Any) -> Optional[str]:
        return value or None

    @classmethod
    def from_environment(cls) -> "DroneConfig":
        """Create configuration from ``DRONE_SERVER``, ``DRONE_TOKEN`` and ``DRONE_CSRF``."""
        return cls(
            server=os.getenv(ENV_SERVER, ""),
            token=os.getenv(ENV_TOKEN),
            csrf=os.getenv(ENV_CSRF),
        )

    @classmethod
    def from_context(cls, context: Any) -> "DroneConfig":
        """Create configuration from a host-runtime context.

        ``context`` is either a mapping or an object exposing the
        ``DRONE_SERVER``, ``DRONE_TOKEN`` and ``DRONE_CSRF`` names as
        attributes. Any of them may be missing.
        """
        return cls(
            server=_lookup(context, ENV_SERVER) or "",
            token=_lookup(context, ENV_TOKEN),
            csrf=_lookup(context, ENV_CSRF),
        )

    @property
    def login(self) -> Optional[str]:
        """User login carried in the token claims, if the token is a JWT.

        The signature is not verified; the server remains the authority.
        """
        if not self.token:
            return None
        try:
            claims = jwt.get_unverified_claims(self.token)
        except JWTError:
            # Personal tokens are not always JWTs
            return None
        return claims.get("text") or claims.get("sub")


def _lookup(context: Any, key: str) -> Optional[str]:
    if context is None:
        return None
    if isinstance(context, Mapping):
        return context.get(key)
    return getattr(context, key, None)


def load_dotenv_for_sdk(path: Optional[Path] = None, *, override: bool = False) -> None:
    """Load environment variables from a .env file."""
    if path is None:
        path = Path.cwd() / ".env"

    if path.exists():
        load_dotenv(path, override=override)
