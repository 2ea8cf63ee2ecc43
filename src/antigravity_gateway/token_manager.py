"""File-backed pool of CloudCode OAuth credentials.

The accounts file is a JSON list of objects shaped like::

    {"access_token": "...", "refresh_token": "...", "expires_in": 3599,
     "timestamp": 1735000000000, "enable": true}

``timestamp`` is the millisecond time the access token was issued.
"""

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from .errors import TokenError
from .settings import Settings

# refresh this long before the token actually expires
EXPIRY_MARGIN_MS = 5 * 60 * 1000

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Account:
    access_token: str
    refresh_token: str | None = None
    expires_in: int = 0
    timestamp: int = 0
    enable: bool = True
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        known = {"access_token", "refresh_token", "expires_in", "timestamp", "enable"}
        return cls(
            access_token=data.get("access_token") or "",
            refresh_token=data.get("refresh_token"),
            expires_in=int(data.get("expires_in") or 0),
            timestamp=int(data.get("timestamp") or 0),
            enable=data.get("enable", True) is not False,
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "timestamp": self.timestamp,
            "enable": self.enable,
        }

    def is_expired(self, now_ms: int) -> bool:
        if not self.access_token or not self.timestamp or not self.expires_in:
            return True
        return now_ms >= self.timestamp + self.expires_in * 1000 - EXPIRY_MARGIN_MS


class TokenManager:
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._path = Path(settings.accounts_file)
        self._transport = transport
        self._lock = asyncio.Lock()
        self._accounts: list[Account] | None = None
        self._index = 0

    def _load(self) -> list[Account]:
        if self._accounts is not None:
            return self._accounts
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("accounts file not found: %s", self._path)
            raw = []
        except (OSError, json.JSONDecodeError) as exc:
            raise TokenError(f"cannot read accounts file {self._path}: {exc}") from exc
        if not isinstance(raw, list):
            raise TokenError(f"accounts file {self._path} must contain a JSON list")
        self._accounts = [Account.from_dict(item) for item in raw if isinstance(item, dict)]
        logger.info("loaded %d account(s)", len(self._accounts))
        return self._accounts

    def _save(self) -> None:
        accounts = self._accounts or []
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps([account.to_dict() for account in accounts], indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp_path, self._path)

    async def _refresh(self, account: Account) -> None:
        settings = self._settings
        if not account.refresh_token:
            raise TokenError("account has no refresh token")
        if not settings.oauth_client_id or not settings.oauth_client_secret:
            raise TokenError("OAuth client credentials are not configured")

        data = {
            "client_id": settings.oauth_client_id,
            "client_secret": settings.oauth_client_secret,
            "grant_type": "refresh_token",
            "refresh_token": account.refresh_token,
        }
        try:
            async with httpx.AsyncClient(
                timeout=settings.upstream_timeout_seconds, transport=self._transport
            ) as client:
                resp = await client.post(settings.oauth_token_url, data=data)
        except httpx.RequestError as exc:
            raise TokenError(f"token refresh request failed: {exc}") from exc

        if resp.status_code != 200:
            if resp.status_code in (400, 401):
                account.enable = False
            raise TokenError(f"token refresh failed ({resp.status_code}): {resp.text}")

        try:
            payload = resp.json()
            access_token = payload["access_token"]
            expires_in = int(payload.get("expires_in") or 3599)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise TokenError(f"malformed token refresh response: {exc!r}") from exc
        account.access_token = access_token
        account.expires_in = expires_in
        account.timestamp = _now_ms()
        logger.info("refreshed access token")

    async def get_token(self) -> Account | None:
        """Return the next usable account, rotating round-robin, or None."""
        async with self._lock:
            accounts = self._load()
            dirty = False
            try:
                for _ in range(len(accounts)):
                    account = accounts[self._index % len(accounts)]
                    self._index = (self._index + 1) % len(accounts)
                    if not account.enable:
                        continue
                    if account.is_expired(_now_ms()):
                        try:
                            await self._refresh(account)
                        except TokenError as exc:
                            logger.warning("skipping account: %s", exc)
                            dirty = dirty or not account.enable
                            continue
                        dirty = True
                    return account
                return None
            finally:
                if dirty:
                    self._save()

    async def disable_current_token(self, token: Account) -> None:
        async with self._lock:
            for account in self._load():
                if account is token or account.access_token == token.access_token:
                    account.enable = False
            self._save()
        logger.warning("account disabled after upstream rejection")
