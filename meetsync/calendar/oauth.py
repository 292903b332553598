"""
Tool: Calendar Credentials
Purpose: Stored OAuth credentials and on-demand token refresh

A stored access token is refreshed only when its recorded expiry is already in
the past, at most once per call, and refreshes for the same user are
serialized so two concurrent reads cannot both refresh and persist
conflicting tokens.

The per-user lock lives in-process. Across several worker processes the
persisted credential is last-writer-wins; that race is accepted at the low
per-user concurrency this service sees.

Usage:
    from meetsync.calendar.oauth import token_manager

    token = await token_manager.get_valid_access_token(user_id)
"""

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from meetsync import get_connection
from meetsync.errors import AuthExpired, CalendarError, NoCalendarConnected
from meetsync.logging_config import get_logger
from meetsync.models import OAuthToken, from_storage, generate_id, to_storage, utc_now

logger = get_logger(__name__)

DEFAULT_PROVIDER = "google"

Refresher = Callable[[str], Awaitable[dict[str, Any]]]


def load_token(user_id: str, provider: str = DEFAULT_PROVIDER) -> OAuthToken | None:
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM oauth_tokens WHERE user_id = ? AND provider = ?",
            (user_id, provider),
        ).fetchone()
    finally:
        conn.close()
    return OAuthToken.from_row(row) if row else None


def has_calendar(user_id: str, provider: str = DEFAULT_PROVIDER) -> bool:
    return load_token(user_id, provider) is not None


def save_token(
    user_id: str,
    access_token: str,
    refresh_token: str | None = None,
    token_expiry: datetime | None = None,
    provider: str = DEFAULT_PROVIDER,
) -> OAuthToken:
    """Insert or replace the credential for (user, provider)."""
    now = to_storage(utc_now())
    conn = get_connection()
    try:
        conn.execute(
            """
            INSERT INTO oauth_tokens (
                id, user_id, provider, access_token, refresh_token, token_expiry,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, provider) DO UPDATE SET
                access_token = excluded.access_token,
                refresh_token = excluded.refresh_token,
                token_expiry = excluded.token_expiry,
                updated_at = excluded.updated_at
            """,
            (
                generate_id(),
                user_id,
                provider,
                access_token,
                refresh_token,
                to_storage(token_expiry),
                now,
                now,
            ),
        )
        conn.commit()
    finally:
        conn.close()

    return OAuthToken(
        user_id=user_id,
        provider=provider,
        access_token=access_token,
        refresh_token=refresh_token,
        token_expiry=from_storage(to_storage(token_expiry)),
    )


def delete_token(user_id: str, provider: str = DEFAULT_PROVIDER) -> bool:
    conn = get_connection()
    try:
        cursor = conn.execute(
            "DELETE FROM oauth_tokens WHERE user_id = ? AND provider = ?",
            (user_id, provider),
        )
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


async def _google_refresher(refresh_token: str) -> dict[str, Any]:
    from meetsync.calendar.google import refresh_access_token

    return await refresh_access_token(refresh_token)


class TokenManager:
    """Hands out valid access tokens, refreshing expired ones on demand.

    Args:
        refresher: async callable taking a refresh token and returning a dict
            with access_token, optional refresh_token and optional expires_in.
        provider: credential provider key in oauth_tokens.
    """

    def __init__(self, refresher: Refresher | None = None, provider: str = DEFAULT_PROVIDER):
        self.refresher = refresher or _google_refresher
        self.provider = provider
        # Entries vanish once no caller holds or waits on the lock.
        self._user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _get_user_lock(self, user_id: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    async def get_valid_access_token(self, user_id: str, now: datetime | None = None) -> OAuthToken:
        """
        Return a usable credential for the user.

        Raises:
            NoCalendarConnected: No credential stored
            AuthExpired: Credential expired and could not be refreshed
        """
        async with self._get_user_lock(user_id):
            # Re-read under the lock: a concurrent caller may have just refreshed.
            token = load_token(user_id, self.provider)
            if token is None:
                raise NoCalendarConnected(user_id)

            now = now or utc_now()
            if not token.is_expired(now):
                return token

            if not token.refresh_token:
                raise AuthExpired(user_id, "token expired and no refresh token available")

            try:
                refreshed = await self.refresher(token.refresh_token)
            except CalendarError as e:
                logger.warning("token_refresh_failed", user_id=user_id, error=str(e))
                raise AuthExpired(user_id, str(e)) from e

            access_token = refreshed.get("access_token")
            if not access_token:
                raise AuthExpired(user_id, "refresh response carried no access token")

            expires_in = refreshed.get("expires_in")
            expiry = now + timedelta(seconds=int(expires_in)) if expires_in else None

            saved = save_token(
                user_id,
                access_token,
                refreshed.get("refresh_token") or token.refresh_token,
                expiry,
                self.provider,
            )
            logger.info("token_refreshed", user_id=user_id, provider=self.provider)
            return saved


token_manager = TokenManager()
