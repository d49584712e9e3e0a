"""Interface to the Roam Research Backend API."""

import json
import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import urlsplit

import requests
from urllib3.exceptions import TimeoutError as Urllib3TimeoutError

from .config import EndpointConfig
from .errors import (
    HTTPStatusError,
    RedirectError,
    RequestTimeoutError,
    ResponseParseError,
    TransportError,
)

logger = logging.getLogger(__name__)

# Only these are followed, and only once per call
REDIRECT_STATUS_CODES = frozenset({301, 302, 308})

QUERY_ENDPOINT = "q"
WRITE_ENDPOINT = "write"


def mask_token(token: str) -> str:
    """Mask a token for logging, showing first/last 4 chars if long enough.

    Args:
        token: The token string to mask.

    Returns:
        A masked version of the token for safe logging.
    """
    if len(token) > 8:
        return f"{token[:4]}...{token[-4:]}"
    return "***"


def _is_timeout(error: requests.exceptions.RequestException) -> bool:
    # requests reports a stalled body read as ConnectionError(ReadTimeoutError)
    if isinstance(error, requests.exceptions.Timeout):
        return True
    return any(isinstance(arg, Urllib3TimeoutError) for arg in error.args)


def _post(
    url: str, headers: dict[str, str], payload: bytes, timeout: float
) -> requests.Response:
    """Issue a single POST without following redirects.

    Raises:
        RequestTimeoutError: If the request exceeds ``timeout``.
        TransportError: If the connection fails or drops mid-stream.
    """
    try:
        return requests.post(
            url,
            headers=headers,
            data=payload,
            allow_redirects=False,
            timeout=timeout,
        )
    except requests.exceptions.RequestException as e:
        if _is_timeout(e):
            raise RequestTimeoutError(
                f"Request to {url} timed out after {timeout:.1f}s"
            ) from e
        raise TransportError(f"Request to {url} failed: {e}") from e


def send(
    config: EndpointConfig,
    envelope: Mapping[str, Any],
    endpoint: str = QUERY_ENDPOINT,
) -> Any:
    """Send a JSON envelope to the graph and return the parsed response.

    A 301, 302 or 308 response is followed once by re-posting the same
    payload to its ``Location``. The redirect hop only gets what is left of
    ``config.timeout``. Whatever the second hop returns is final.

    Args:
        config: Endpoint settings.
        envelope: JSON-serialisable request body (a query or a write action).
        endpoint: Path segment below the graph base path, ``q`` or ``write``.

    Returns:
        The parsed JSON body of a 200 response, ``{}`` for an empty body.

    Raises:
        RedirectError: If a redirect has no absolute Location URL.
        RequestTimeoutError: If the time budget is exhausted.
        TransportError: If the connection fails.
        HTTPStatusError: If the final status is not 200.
        ResponseParseError: If a 200 body is not valid JSON.
    """
    payload = json.dumps(envelope).encode("utf-8")
    url = f"{config.base_url}{config.base_path}/{endpoint}"
    headers = {
        "Content-Type": "application/json",
        "Content-Length": str(len(payload)),
        "Authorization": f"Bearer {config.api_token}",
        "Accept": "application/json",
    }

    logger.debug("Making POST request to: %s", url)
    logger.debug(
        "Request headers: Authorization: Bearer %s", mask_token(config.api_token)
    )

    deadline = time.monotonic() + config.timeout
    resp = _post(url, headers, payload, config.timeout)

    if resp.status_code in REDIRECT_STATUS_CODES:
        location = resp.headers.get("Location")
        if not location:
            raise RedirectError(
                f"Redirect (HTTP {resp.status_code}) without Location header"
            )
        parts = urlsplit(location)
        if not parts.scheme or not parts.netloc:
            raise RedirectError(f"Could not parse redirect URL: {location}")

        logger.info("Received redirect to: %s", location)
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise RequestTimeoutError(
                f"Request to {url} timed out after {config.timeout:.1f}s"
            )
        resp = _post(location, headers, payload, remaining)

    if resp.status_code != 200:
        body = resp.text
        logger.info("Error response status: %s", resp.status_code)
        logger.debug("Error response body: %s", body)
        raise HTTPStatusError(resp.status_code, body)

    # Parsed from bytes so the UTF encoding is detected, whatever the charset
    if not resp.content:
        return {}
    try:
        return json.loads(resp.content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ResponseParseError(f"Invalid JSON in response from {url}: {e}") from e


class RoamClient:
    """Client for running queries and write actions against one graph."""

    def __init__(self, config: EndpointConfig) -> None:
        self.config = config
        logger.info("Initialized RoamClient for graph: %s", config.graph_name)

    def query(self, query: str, args: Sequence[Any] | None = None) -> list[Any]:
        """Run a Datalog query on the Roam graph.

        Args:
            query: Datalog query string.
            args: Optional input bindings for the query's ``:in`` clause.

        Returns:
            Query result rows.
        """
        body: dict[str, Any] = {"query": query}
        if args:
            body["args"] = list(args)

        result = send(self.config, body, QUERY_ENDPOINT)
        if not isinstance(result, dict):
            logger.info("Query response is not an object, treating as no rows")
            return []
        return result.get("result") or []

    def write(self, action: Mapping[str, Any]) -> Any:
        """Send a single write action, e.g. ``create-page``."""
        return send(self.config, action, WRITE_ENDPOINT)

    def batch(self, actions: Sequence[Mapping[str, Any]]) -> Any:
        """Send several write actions in one ``batch-actions`` request."""
        return self.write({"action": "batch-actions", "actions": list(actions)})
