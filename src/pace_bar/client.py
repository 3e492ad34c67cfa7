"""HTTP client for the Claude usage API.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

import asyncio
import errno
import http.client
import json
import logging
import math
import socket
import ssl
import urllib.error
import urllib.request
from typing import Any

from pace_bar import __version__
from pace_bar.dates import parse_timestamp
from pace_bar.errors import ApiError, TransportError, TransportErrorKind
from pace_bar.models import UsageSnapshot

logger = logging.getLogger(__name__)

BASE_API_URL = "https://api.anthropic.com"
USAGE_PATH = "/api/oauth/usage"
OAUTH_BETA = "oauth-2025-04-20"

# Cloudflare blocks Python's default User-Agent (error 1010).
USER_AGENT = f"Pace-Bar/{__version__}"
REQUEST_TIMEOUT = 10
RESOURCE_TIMEOUT = 30

SESSION_KEY = "five_hour"
WEEKLY_KEY = "seven_day"
SONNET_KEYS = ("sonnet_only", "seven_day_sonnet")

_NO_CONNECTIVITY_ERRNOS = {errno.ENETUNREACH, errno.ENETDOWN}
_HOST_UNREACHABLE_ERRNOS = {errno.EHOSTUNREACH, errno.EHOSTDOWN}


def transport_error_for(reason: object) -> TransportError:
    """Classify a low-level failure (usually ``URLError.reason``)."""
    detail = f"{type(reason).__name__}: {reason}"
    if isinstance(reason, socket.gaierror):
        kind = TransportErrorKind.DNS_FAILURE
    elif isinstance(reason, (ssl.SSLError, ssl.CertificateError)):
        kind = TransportErrorKind.TLS_FAILURE
    elif isinstance(reason, TimeoutError):
        kind = TransportErrorKind.TIMEOUT
    elif isinstance(reason, ConnectionRefusedError):
        kind = TransportErrorKind.CONNECT_FAILED
    elif isinstance(reason, (ConnectionResetError, ConnectionAbortedError,
                             BrokenPipeError, http.client.HTTPException)):
        kind = TransportErrorKind.CONNECTION_LOST
    elif isinstance(reason, OSError) and reason.errno in _NO_CONNECTIVITY_ERRNOS:
        kind = TransportErrorKind.NO_CONNECTIVITY
    elif isinstance(reason, OSError) and reason.errno in _HOST_UNREACHABLE_ERRNOS:
        kind = TransportErrorKind.HOST_UNREACHABLE
    else:
        kind = TransportErrorKind.OTHER
        detail = str(reason)
    return TransportError(kind, detail)


def api_request(
    url: str,
    *,
    headers: dict[str, str] | None = None,
    timeout: float = REQUEST_TIMEOUT,
) -> Any:
    """Make a blocking GET request and return the decoded JSON body.

    Raises :class:`ApiError` for any status other than 200 and
    :class:`TransportError` for everything that went wrong on the way.
    """
    all_headers: dict[str, str] = {"User-Agent": USER_AGENT}
    if headers:
        all_headers.update(headers)

    try:
        req = urllib.request.Request(url, headers=all_headers, method="GET")
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = resp.status
            body = resp.read()
    except urllib.error.HTTPError as e:
        raise ApiError(e.code) from e
    except urllib.error.URLError as e:
        raise transport_error_for(e.reason) from e
    except ValueError as e:
        raise TransportError(TransportErrorKind.BAD_URL, str(e)) from e
    except (OSError, http.client.HTTPException) as e:
        raise transport_error_for(e) from e

    if status != 200:
        raise ApiError(status)

    try:
        return json.loads(body.decode(), parse_constant=_reject_constant)
    except ValueError as e:
        raise TransportError(TransportErrorKind.INVALID_RESPONSE, str(e)) from e


def _reject_constant(name: str) -> float:
    # NaN and Infinity are not JSON.
    raise ValueError(f"non-standard JSON constant {name}")


def _number(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _window(data: dict[str, Any], *keys: str) -> dict[str, Any] | None:
    for key in keys:
        bucket = data.get(key)
        if isinstance(bucket, dict):
            return bucket
    return None


def parse_usage(data: Any) -> UsageSnapshot:
    """Normalize a usage API body into a :class:`UsageSnapshot`.

    Missing windows are not an error: utilization defaults to 0 and the
    reset time to ``None``.  The Sonnet window stays ``None`` unless the
    API reports a utilization for it.
    """
    if not isinstance(data, dict):
        raise TransportError(
            TransportErrorKind.INVALID_RESPONSE,
            f"expected a JSON object, got {type(data).__name__}",
        )

    logger.debug("Usage API response keys: %s", list(data.keys()))
    session = _window(data, SESSION_KEY) or {}
    weekly = _window(data, WEEKLY_KEY) or {}
    sonnet = _window(data, *SONNET_KEYS) or {}
    if not session:
        logger.warning("%s missing from usage API response", SESSION_KEY)
    if not weekly:
        logger.warning("%s missing from usage API response", WEEKLY_KEY)

    return UsageSnapshot(
        session_utilization=_number(session.get("utilization")) or 0.0,
        session_resets_at=parse_timestamp(session.get("resets_at")),
        weekly_utilization=_number(weekly.get("utilization")) or 0.0,
        weekly_resets_at=parse_timestamp(weekly.get("resets_at")),
        sonnet_utilization=_number(sonnet.get("utilization")),
        sonnet_resets_at=parse_timestamp(sonnet.get("resets_at")),
    )


class UsageClient:
    def __init__(
        self,
        base_url: str = BASE_API_URL,
        *,
        request_timeout: float = REQUEST_TIMEOUT,
        resource_timeout: float = RESOURCE_TIMEOUT,
    ) -> None:
        self.url = base_url.rstrip("/") + USAGE_PATH
        self.request_timeout = request_timeout
        self.resource_timeout = resource_timeout

    async def fetch(self, token: str) -> UsageSnapshot:
        """Call the usage API with *token* and return the parsed snapshot."""
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "anthropic-beta": OAUTH_BETA,
        }
        try:
            data = await asyncio.wait_for(
                asyncio.to_thread(
                    api_request, self.url,
                    headers=headers, timeout=self.request_timeout,
                ),
                self.resource_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Usage API call exceeded %gs", self.resource_timeout)
            raise TransportError(
                TransportErrorKind.TIMEOUT,
                f"no response within {self.resource_timeout:g}s",
            ) from None
        except ApiError as e:
            logger.warning("Usage API HTTP error: %s", e)
            raise
        except TransportError as e:
            logger.warning("Usage API transport error: %s", e)
            raise

        snapshot = parse_usage(data)
        logger.debug("Usage API call succeeded")
        return snapshot
