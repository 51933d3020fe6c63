"""Endpoint resolution.

The transport asks an ``EndpointProvider`` for the current host and port on
every request, so a discovering provider can move the client between nodes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from esrest.core.config import Settings, get_settings


@dataclass(frozen=True)
class Endpoint:
    """Host and port of an engine node."""
    host: str
    port: int
    scheme: str = "http"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


class EndpointProvider(ABC):
    """Supplies the endpoint to send the next request to."""

    @abstractmethod
    async def resolve(self) -> Endpoint:
        """Return the current endpoint.

        Returns:
            Endpoint to use for the next request
        """
        pass


class StaticEndpoint(EndpointProvider):
    """Always resolves to the same endpoint."""

    def __init__(self, endpoint: Endpoint):
        self.endpoint = endpoint

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StaticEndpoint":
        settings = settings or get_settings()
        return cls(Endpoint(
            host=settings.ES_HOST,
            port=settings.ES_PORT,
            scheme=settings.ES_SCHEME,
        ))

    async def resolve(self) -> Endpoint:
        return self.endpoint
