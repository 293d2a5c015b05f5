"""Typed, durable persistence of the session credentials.

:class:`CredentialStore` wraps a :class:`~trainerlink.storage.KeyValueStore`
and owns a fixed set of logical keys:

==========================  ==============================================
Key                         Value
==========================  ==============================================
``access_token``            Short-lived bearer token.
``refresh_token``           Long-lived renewal credential.
``user``                    JSON-serialised :class:`~trainerlink.models.UserProfile`.
``saved_emails``            JSON list of remembered, normalised emails.
``@onboarding_completed``   ``"true"`` once the onboarding flow finished.
==========================  ==============================================

The access token, refresh token, and profile are written and deleted as one
batch, never individually, so no reader ever observes a torn session where
one survives without the other.

Failure policy: a failed *read* is logged and treated as "absent"; a failed
*write* raises :class:`~trainerlink.exceptions.StorageFailure` so that
in-memory and durable state never silently diverge.

See Also:
    :class:`~trainerlink.auth.manager.SessionManager` -- the only runtime
    mutator of this store.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError

from trainerlink.exceptions import StorageFailure
from trainerlink.models import Session, TokenPair, UserProfile
from trainerlink.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
USER_KEY = "user"
SAVED_EMAILS_KEY = "saved_emails"
ONBOARDING_KEY = "@onboarding_completed"

SESSION_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY)

MAX_REMEMBERED_EMAILS = 10


def normalize_email(email: Optional[str]) -> str:
    """Trim and lower-case *email*; ``None`` becomes the empty string."""
    return (email or "").strip().lower()


def push_remembered_email(emails: list[str], email: str) -> list[str]:
    """Return *emails* with *email* moved (or added) to the front.

    The result holds at most :data:`MAX_REMEMBERED_EMAILS` entries and no
    duplicates.
    """
    normalized = normalize_email(email)
    rest = [e for e in emails if e != normalized]
    return [normalized, *rest][:MAX_REMEMBERED_EMAILS]


class CredentialStore:
    """Read/write the persisted session through a key-value store.

    Args:
        store: The durable backend.

    Example::

        credentials = CredentialStore(DiskKeyValueStore(tmp_dir))
        await credentials.save_session(tokens, profile, remember_email="a@b.c")
        session = await credentials.load_session()
        assert session.authenticated
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def backend(self) -> KeyValueStore:
        """The underlying key-value store."""
        return self._store

    # ------------------------------------------------------------------ #
    # Session
    # ------------------------------------------------------------------ #

    async def load_session(self) -> Session:
        """Rebuild the session persisted by a previous process.

        Returns:
            An authenticated :class:`~trainerlink.models.Session` when both
            the access token and a valid profile are stored, otherwise the
            logged-out session. Partial sessions are never returned.
        """
        try:
            values = await self._store.multi_get([ACCESS_TOKEN_KEY, USER_KEY])
        except StorageFailure as exc:
            logger.warning("Could not read persisted session: %s", exc)
            return Session.logged_out()

        access_token = values.get(ACCESS_TOKEN_KEY)
        user = _decode_profile(values.get(USER_KEY))
        if not access_token or user is None:
            return Session.logged_out()
        return Session(access_token=access_token, authenticated=True, user=user)

    async def save_session(
        self,
        tokens: TokenPair,
        profile: UserProfile,
        remember_email: Optional[str] = None,
    ) -> None:
        """Persist the token pair and profile as one batch.

        When *remember_email* is given, the remembered-emails list is updated
        in the same batch.

        Raises:
            StorageFailure: If the batch could not be written. Nothing of the
                batch is persisted in that case.
        """
        items = {
            ACCESS_TOKEN_KEY: tokens.access,
            REFRESH_TOKEN_KEY: tokens.refresh,
            USER_KEY: profile.model_dump_json(),
        }
        if remember_email is not None:
            emails = push_remembered_email(await self.remembered_emails(), remember_email)
            items[SAVED_EMAILS_KEY] = json.dumps(emails)
        await self._store.multi_set(items)

    async def clear_session(self, forget_emails: bool = False) -> None:
        """Remove the access token, refresh token, and profile as one batch.

        Args:
            forget_emails: Also drop the remembered-emails list.
        """
        keys = list(SESSION_KEYS)
        if forget_emails:
            keys.append(SAVED_EMAILS_KEY)
        await self._store.multi_remove(keys)

    # ------------------------------------------------------------------ #
    # Individual credentials
    # ------------------------------------------------------------------ #

    async def get_access_token(self) -> Optional[str]:
        return await self._read(ACCESS_TOKEN_KEY)

    async def get_refresh_token(self) -> Optional[str]:
        return await self._read(REFRESH_TOKEN_KEY)

    async def update_tokens(self, access: str, refresh: Optional[str] = None) -> None:
        """Overwrite the access token after a successful renewal.

        A rotated refresh token, when the server issued one, is written in
        the same batch.
        """
        items = {ACCESS_TOKEN_KEY: access}
        if refresh:
            items[REFRESH_TOKEN_KEY] = refresh
        await self._store.multi_set(items)

    async def get_cached_profile(self) -> Optional[UserProfile]:
        """Return the cached profile, or ``None`` if absent or unreadable."""
        return _decode_profile(await self._read(USER_KEY))

    async def save_profile(self, profile: UserProfile) -> None:
        await self._store.set(USER_KEY, profile.model_dump_json())

    # ------------------------------------------------------------------ #
    # Remembered emails
    # ------------------------------------------------------------------ #

    async def remembered_emails(self) -> list[str]:
        """Return the remembered emails, most recently used first."""
        raw = await self._read(SAVED_EMAILS_KEY)
        if not raw:
            return []
        try:
            emails = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable remembered-emails list")
            return []
        if not isinstance(emails, list):
            return []
        return [e for e in emails if isinstance(e, str)]

    async def forget_email(self, email: str) -> None:
        """Drop *email* (after normalisation) from the remembered list, if present."""
        normalized = normalize_email(email)
        emails = await self.remembered_emails()
        if normalized not in emails:
            return
        remaining = [e for e in emails if e != normalized]
        await self._store.set(SAVED_EMAILS_KEY, json.dumps(remaining))

    # ------------------------------------------------------------------ #
    # Onboarding flag
    # ------------------------------------------------------------------ #

    async def is_onboarding_completed(self) -> bool:
        return await self._read(ONBOARDING_KEY) == "true"

    async def complete_onboarding(self) -> None:
        await self._store.set(ONBOARDING_KEY, "true")

    async def reset_onboarding(self) -> None:
        await self._store.remove(ONBOARDING_KEY)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _read(self, key: str) -> Optional[str]:
        """Read *key*, treating a storage failure as absence."""
        try:
            return await self._store.get(key)
        except StorageFailure as exc:
            logger.warning("Could not read '%s': %s", key, exc)
            return None


def _decode_profile(raw: Optional[str]) -> Optional[UserProfile]:
    if not raw:
        return None
    try:
        return UserProfile.model_validate_json(raw)
    except ValidationError:
        logger.warning("Discarding unreadable cached profile")
        return None
