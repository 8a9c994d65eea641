"""
Kiro Gateway - Authentication Manager

Obtains Kiro access tokens from the refresh token that kiro-cli stores in
its local SQLite database, refreshing them shortly before they expire.

The database is re-read on every token request so that logging into a
different account in kiro-cli takes effect without restarting the gateway.
"""

import asyncio
import json
import sqlite3
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import DEFAULT_REGION, TOKEN_REFRESH_THRESHOLD, get_kiro_refresh_url
from ..core.errors import MissingCredentialsError, TokenRefreshError
from ..core.utils import get_machine_fingerprint
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics

logger = get_logger(__name__)

TOKEN_KEYS = ("kirocli:social:token", "codewhisperer:odic:token")
DEFAULT_EXPIRES_IN = 3600
EXPIRY_SAFETY_MARGIN = 60


def candidate_db_paths(home: Optional[Path] = None, platform: Optional[str] = None) -> List[Path]:
    """Locations where kiro-cli keeps data.sqlite3, most specific first."""
    home = home or Path.home()
    platform = platform or sys.platform

    candidates = []
    if platform == "darwin":
        candidates.append(home / "Library" / "Application Support" / "kiro-cli" / "data.sqlite3")
    candidates.append(home / ".config" / "kiro-cli" / "data.sqlite3")
    if platform == "win32":
        candidates.append(home / "AppData" / "Roaming" / "kiro-cli" / "data.sqlite3")
    return candidates


def find_kiro_db(home: Optional[Path] = None, platform: Optional[str] = None) -> Optional[Path]:
    for path in candidate_db_paths(home, platform):
        if path.exists():
            return path
    return None


def read_token_from_db(db_path: Path) -> Optional[Dict[str, Any]]:
    """
    Read the stored token record from the kiro-cli database.

    Returns:
        The first record holding a refresh_token, or None when the file
        is missing, locked, malformed or has no usable record.
    """
    try:
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True, timeout=5)
    except sqlite3.Error as e:
        logger.warning("Cannot open kiro-cli database", db_path=str(db_path), error=str(e))
        return None

    try:
        for key in TOKEN_KEYS:
            row = conn.execute("SELECT value FROM auth_kv WHERE key=?", (key,)).fetchone()
            if not row:
                continue
            try:
                data = json.loads(row[0])
            except (TypeError, ValueError):
                continue
            if isinstance(data, dict) and data.get("refresh_token"):
                return data
    except sqlite3.Error as e:
        logger.warning("Cannot read kiro-cli database", db_path=str(db_path), error=str(e))
    finally:
        conn.close()

    return None


class KiroAuthManager:
    """
    Manages the Kiro access token lifecycle.

    Credentials come from explicit arguments, else the kiro-cli database.
    Concurrent get_access_token() calls share a single refresh.
    """

    def __init__(
        self,
        region: str = DEFAULT_REGION,
        db_path: Optional[str] = None,
        refresh_token: Optional[str] = None,
        profile_arn: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._region = region
        self._refresh_url = get_kiro_refresh_url(region)
        self._refresh_token = refresh_token
        self._profile_arn = profile_arn
        self._access_token: Optional[str] = None
        self._expires_at: Optional[float] = None
        self._fingerprint = get_machine_fingerprint()
        self._refresh_lock = asyncio.Lock()
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

        if db_path:
            self._db_path: Optional[Path] = Path(db_path)
        elif refresh_token:
            self._db_path = None
        else:
            self._db_path = find_kiro_db()

        if self._db_path:
            self.sync_from_db()

    @property
    def region(self) -> str:
        return self._region

    @property
    def profile_arn(self) -> Optional[str]:
        return self._profile_arn

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    @property
    def has_credentials(self) -> bool:
        return bool(self._refresh_token)

    def sync_from_db(self) -> bool:
        """
        Adopt credentials from the kiro-cli database.

        Returns:
            True if a different refresh token was loaded (first load or
            account switch), which invalidates the cached access token.
        """
        if not self._db_path:
            return False
        return self._adopt(read_token_from_db(self._db_path))

    async def _sync_from_db_async(self) -> bool:
        """sync_from_db with the SQLite read moved off the event loop."""
        if not self._db_path:
            return False
        return self._adopt(await asyncio.to_thread(read_token_from_db, self._db_path))

    def _adopt(self, data: Optional[Dict[str, Any]]) -> bool:
        if not data or data["refresh_token"] == self._refresh_token:
            return False

        self._refresh_token = data["refresh_token"]
        self._access_token = None
        self._expires_at = None

        if data.get("profile_arn"):
            self._profile_arn = data["profile_arn"]
        region = data.get("region")
        if region and region != self._region:
            self._region = region
            self._refresh_url = get_kiro_refresh_url(region)

        logger.info("Loaded Kiro credentials from kiro-cli database", region=self._region)
        return True

    def is_token_expiring_soon(self) -> bool:
        if self._expires_at is None:
            return True
        return time.time() + TOKEN_REFRESH_THRESHOLD >= self._expires_at

    async def _refresh_token_request(self):
        if not self._refresh_token:
            raise MissingCredentialsError()

        try:
            response = await self._client.post(
                self._refresh_url,
                json={"refreshToken": self._refresh_token},
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": f"KiroGateway-{self._fingerprint[:16]}",
                },
            )
        except httpx.HTTPError as e:
            get_metrics().record_token_refresh(success=False)
            raise TokenRefreshError(f"Token refresh request failed: {e}") from e

        if response.status_code >= 400:
            get_metrics().record_token_refresh(success=False)
            raise TokenRefreshError(
                f"Token refresh failed ({response.status_code}): {response.text[:500]}",
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("accessToken"):
            get_metrics().record_token_refresh(success=False)
            raise TokenRefreshError("Token refresh response missing accessToken")

        self._access_token = data["accessToken"]
        if data.get("refreshToken"):
            self._refresh_token = data["refreshToken"]
        if data.get("profileArn"):
            self._profile_arn = data["profileArn"]

        expires_in = data.get("expiresIn") or DEFAULT_EXPIRES_IN
        self._expires_at = time.time() + expires_in - EXPIRY_SAFETY_MARGIN

        get_metrics().record_token_refresh(success=True)
        logger.info("Kiro access token refreshed", region=self._region, expires_in=expires_in)

    async def get_access_token(self) -> str:
        """
        Return a valid access token, refreshing it if needed.

        Raises:
            MissingCredentialsError: No refresh token is available
            TokenRefreshError: The refresh endpoint failed
        """
        await self._sync_from_db_async()

        if self._access_token and not self.is_token_expiring_soon():
            return self._access_token

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            if not self._access_token or self.is_token_expiring_soon():
                await self._refresh_token_request()

        if not self._access_token:
            raise TokenRefreshError("Failed to obtain access token")
        return self._access_token

    async def force_refresh(self) -> str:
        """Discard the cached token and fetch a new one."""
        await self._sync_from_db_async()
        self._access_token = None
        self._expires_at = None
        return await self.get_access_token()

    async def close(self):
        await self._client.aclose()
