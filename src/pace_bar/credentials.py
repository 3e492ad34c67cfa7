"""OAuth access token lookup from the Claude Code credential store.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Protocol

from pace_bar.errors import CredentialError, CredentialErrorKind

logger = logging.getLogger(__name__)

KEYCHAIN_SERVICE = "Claude Code-credentials"
KEYCHAIN_FALLBACK_SERVICE = "Claude Code"
KEYCHAIN_TIMEOUT = 15
SECURITY_BIN = "/usr/bin/security"
ITEM_NOT_FOUND_EXIT = 44  # errSecItemNotFound

CREDENTIALS_FILE = Path.home() / ".claude" / ".credentials.json"
OAUTH_KEY = "claudeAiOauth"
ACCESS_TOKEN_KEY = "accessToken"


class CredentialProvider(Protocol):
    async def get_token(self) -> str:
        ...


def extract_access_token(raw: str) -> str:
    """Return ``claudeAiOauth.accessToken`` from a stored credential blob.

    Raises ``MALFORMED_CREDENTIAL`` when the blob is not a JSON object or
    lacks the token; the error carries the top-level key names found so
    the problem can be diagnosed without exposing the secret.
    """
    try:
        creds = json.loads(raw)
    except json.JSONDecodeError:
        raise CredentialError(
            CredentialErrorKind.MALFORMED_CREDENTIAL, "credential value is not JSON",
        ) from None

    if not isinstance(creds, dict):
        raise CredentialError(
            CredentialErrorKind.MALFORMED_CREDENTIAL, "credential JSON is not an object",
        )

    logger.debug("Credential JSON keys: %s", list(creds.keys()))
    oauth = creds.get(OAUTH_KEY)
    token = oauth.get(ACCESS_TOKEN_KEY) if isinstance(oauth, dict) else None
    if not isinstance(token, str) or not token:
        raise CredentialError(
            CredentialErrorKind.MALFORMED_CREDENTIAL,
            "no OAuth access token",
            available_keys=sorted(creds.keys()),
        )
    return token


def _keychain_error(returncode: int, stderr: str) -> CredentialError:
    """Map a failed ``security`` invocation onto a credential error kind."""
    message = stderr.strip()
    lowered = message.lower()
    if returncode == ITEM_NOT_FOUND_EXIT or "could not be found" in lowered:
        return CredentialError(CredentialErrorKind.NOT_LOGGED_IN, message or None)
    if "interaction is not allowed" in lowered:
        return CredentialError(CredentialErrorKind.INTERACTION_BLOCKED, message)
    if "denied" in lowered or "authorization" in lowered or "canceled" in lowered:
        return CredentialError(CredentialErrorKind.ACCESS_DENIED, message)
    return CredentialError(
        CredentialErrorKind.LOOKUP_FAILED, message or f"exit code {returncode}",
    )


class KeychainCredentialProvider:
    """Reads the token through the macOS ``security`` CLI.

    Going through ``security`` instead of the Keychain API keeps us inside
    the item's existing ACL, so no access prompt is shown.
    """

    def __init__(
        self,
        service: str = KEYCHAIN_SERVICE,
        fallback_service: str | None = KEYCHAIN_FALLBACK_SERVICE,
        security_bin: str = SECURITY_BIN,
        timeout: float = KEYCHAIN_TIMEOUT,
    ) -> None:
        self.service = service
        self.fallback_service = fallback_service
        self.security_bin = security_bin
        self.timeout = timeout

    async def get_token(self) -> str:
        try:
            return await self._token_for(self.service)
        except CredentialError as primary_error:
            if not self.fallback_service:
                raise
            logger.debug("Primary keychain entry unusable (%s), trying %r",
                         primary_error, self.fallback_service)
            try:
                return await self._token_for(self.fallback_service)
            except CredentialError as fallback_error:
                logger.debug("Fallback keychain entry unusable: %s", fallback_error)
                raise primary_error from None

    async def _token_for(self, service: str) -> str:
        return extract_access_token(await self._lookup(service))

    async def _lookup(self, service: str) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.security_bin, "find-generic-password", "-s", service, "-w",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CredentialError(
                CredentialErrorKind.LOOKUP_FAILED, f"{type(e).__name__}: {e}",
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise CredentialError(
                CredentialErrorKind.LOOKUP_FAILED,
                f"security timed out after {self.timeout:g}s",
            ) from None

        if proc.returncode != 0:
            logger.debug("Keychain lookup for %r failed (exit %d)", service, proc.returncode)
            raise _keychain_error(proc.returncode, stderr.decode(errors="replace"))

        raw = stdout.decode(errors="replace").strip()
        if not raw:
            raise CredentialError(
                CredentialErrorKind.NOT_LOGGED_IN, "keychain returned empty credentials",
            )
        return raw


class FileCredentialProvider:
    """Reads the token from Claude Code's plaintext credentials file.

    This is where the CLI keeps credentials on Linux and Windows.
    """

    def __init__(self, path: str | os.PathLike[str] = CREDENTIALS_FILE) -> None:
        self.path = Path(path)

    async def get_token(self) -> str:
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except FileNotFoundError:
            raise CredentialError(
                CredentialErrorKind.NOT_LOGGED_IN, f"{self.path} not found",
            ) from None
        except PermissionError as e:
            raise CredentialError(CredentialErrorKind.ACCESS_DENIED, str(e)) from e
        except (OSError, UnicodeDecodeError) as e:
            raise CredentialError(
                CredentialErrorKind.LOOKUP_FAILED, f"{type(e).__name__}: {e}",
            ) from e

        if not raw.strip():
            raise CredentialError(
                CredentialErrorKind.NOT_LOGGED_IN, f"{self.path} is empty",
            )
        return extract_access_token(raw)


def default_credential_provider(config: dict[str, Any] | None = None) -> CredentialProvider:
    """Pick the credential store Claude Code uses on this platform.

    An explicit ``credentials_file`` wins everywhere, macOS included.
    """
    config = config or {}
    path = config.get("credentials_file")
    if sys.platform == "darwin" and not path:
        return KeychainCredentialProvider()
    return FileCredentialProvider(os.path.expanduser(str(path or CREDENTIALS_FILE)))


def find_claude() -> str | None:
    """Resolve the claude binary path, checking common locations."""
    found = shutil.which("claude")
    if found:
        logger.debug("Found claude via PATH: %s", found)
        return found
    for path in [
        os.path.expanduser("~/.local/bin/claude"),    # native installer
        os.path.expanduser("~/.claude/local/claude"),  # legacy
        "/usr/local/bin/claude",                       # Intel Homebrew / manual
        "/opt/homebrew/bin/claude",                    # Apple Silicon Homebrew
    ]:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            logger.debug("Found claude at fallback path: %s", path)
            return path
    logger.warning("Claude CLI binary not found in PATH or fallback locations")
    return None
