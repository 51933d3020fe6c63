"""HTTP transport.

One request per call against the endpoint the provider currently resolves.
No retries: a failed request surfaces to the caller as an exception.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import unquote

import httpx

from esrest.core.config import Settings, get_settings
from esrest.core.errors import (
    DeserializationError,
    ErrorCode,
    IndexAlreadyExistsError,
    SearchError,
    TransportError,
)
from esrest.core.search.endpoint import EndpointProvider, StaticEndpoint

logger = logging.getLogger(__name__)

Body = Union[None, Dict[str, Any], List[Dict[str, Any]]]

_ALREADY_EXISTS_TYPES = (
    "resource_already_exists_exception",
    "index_already_exists_exception",
)


@dataclass(frozen=True)
class TransportResponse:
    status: int
    text: str

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise DeserializationError(f"Response is not JSON: {e}") from e


def _encode(body: Body) -> Tuple[Optional[bytes], Dict[str, str]]:
    if body is None:
        return None, {}
    if isinstance(body, list):
        # _bulk wants newline-delimited JSON with a trailing newline
        lines = "".join(json.dumps(line, separators=(",", ":")) + "\n" for line in body)
        return lines.encode("utf-8"), {"Content-Type": "application/x-ndjson"}
    return json.dumps(body, separators=(",", ":")).encode("utf-8"), {"Content-Type": "application/json"}


def classify_error(status: int, text: str, path: str) -> SearchError:
    """Map a non-2xx response to the error the caller should see."""
    try:
        payload = json.loads(text) if text else {}
    except ValueError:
        payload = {}

    error = payload.get("error") if isinstance(payload, dict) else None

    if status == 400:
        if isinstance(error, dict) and error.get("type") in _ALREADY_EXISTS_TYPES:
            index = error.get("index") or unquote(path.strip("/").split("/")[0])
            return IndexAlreadyExistsError(index, body=text)
        if isinstance(error, str) and "IndexAlreadyExistsException" in error:
            return IndexAlreadyExistsError(unquote(path.strip("/").split("/")[0]), body=text)

    if isinstance(error, dict):
        reason = f"{error.get('type', 'error')}: {error.get('reason', '')}"
    elif error:
        reason = str(error)
    else:
        reason = text[:200]
    return TransportError(f"HTTP {status} from {path}: {reason}", status=status, body=text)


class HttpTransport:
    """Async HTTP transport over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        endpoint_provider: Optional[EndpointProvider] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        self.endpoint_provider = endpoint_provider or StaticEndpoint.from_settings(settings)
        self.timeout_seconds = settings.ES_REQUEST_TIMEOUT_SECONDS
        self.auth = settings.basic_auth

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            kwargs: Dict[str, Any] = {"timeout": httpx.Timeout(self.timeout_seconds)}
            if self.auth:
                kwargs["auth"] = self.auth
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        body: Body = None,
        params: Optional[Mapping[str, str]] = None,
        allowed_status: Sequence[int] = (),
    ) -> TransportResponse:
        """Send one request.

        Args:
            method: HTTP method
            path: Path starting with "/"
            body: JSON object, or a list of objects sent as NDJSON
            params: Query string parameters
            allowed_status: Non-2xx statuses returned instead of raised

        Returns:
            TransportResponse

        Raises:
            IndexAlreadyExistsError: On an index-creation conflict
            TransportError: On connection failure, timeout or other status
        """
        endpoint = await self.endpoint_provider.resolve()
        content, headers = _encode(body)

        start = time.perf_counter()
        try:
            resp = await self._get_client().request(
                method,
                f"{endpoint.url}{path}",
                content=content,
                params=params,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                f"{method} {path} timed out",
                extra={"method": method, "path": path, "error_code": ErrorCode.TIMEOUT.value},
            )
            raise TransportError(f"{method} {path} timed out", code=ErrorCode.TIMEOUT) from e
        except httpx.HTTPError as e:
            logger.warning(
                f"{method} {path} failed: {e}",
                extra={"method": method, "path": path, "error_code": ErrorCode.NETWORK_ERROR.value},
            )
            raise TransportError(f"{method} {path} failed: {e}", code=ErrorCode.NETWORK_ERROR) from e

        latency_ms = int((time.perf_counter() - start) * 1000)
        status = resp.status_code
        logger.debug(
            f"{method} {path} -> {status}",
            extra={"method": method, "path": path, "status": status, "latency_ms": latency_ms},
        )

        if 200 <= status < 300 or status in allowed_status:
            return TransportResponse(status=status, text=resp.text)

        error = classify_error(status, resp.text, path)
        logger.warning(
            f"{method} {path} -> {status}: {error.message}",
            extra={"method": method, "path": path, "status": status, "error_code": error.code.value},
        )
        raise error

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
