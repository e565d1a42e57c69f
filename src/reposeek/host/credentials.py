"""Per-user code host credentials."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from reposeek.store.models import UserCredential, as_utc, utcnow

if TYPE_CHECKING:
    from reposeek.config.models import GitHubConfig
    from reposeek.store.database import Database

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedCredential:
    """Token to send upstream, and whether it belongs to the user."""

    token: str | None
    user_scoped: bool

    @property
    def authorizes_private(self) -> bool:
        return self.user_scoped and self.token is not None


class CredentialResolver:
    """Looks up a user's stored token, falling back to the app token.

    Only a user-scoped token counts as authorization for a private repository.
    The app token merely raises rate limits on public calls.
    """

    def __init__(self, db: Database, config: GitHubConfig) -> None:
        self._db = db
        self._app_token = config.app_token
        self._expiry_buffer = timedelta(seconds=config.token_expiry_buffer_sec)

    def _is_expired(self, expires_at: datetime | None, now: datetime) -> bool:
        if expires_at is None:
            return False
        return as_utc(expires_at) < as_utc(now) + self._expiry_buffer

    def user_token(self, user_id: str, *, now: datetime | None = None) -> str | None:
        """The user's stored token, or None if missing or about to expire."""
        with self._db.session() as session:
            row = session.get(UserCredential, user_id)
            if row is None:
                return None
            if self._is_expired(row.expires_at, now or utcnow()):
                logger.info("credential_expired", user_id=user_id, expires_at=str(row.expires_at))
                return None
            return row.token

    def resolve(self, user_id: str | None, explicit: str | None = None) -> ResolvedCredential:
        """Pick the token for a request.

        An explicit token (e.g. supplied with a reindex request) wins, then the
        user's stored token, then the app token.
        """
        if explicit:
            return ResolvedCredential(token=explicit, user_scoped=True)
        if user_id is not None:
            token = self.user_token(user_id)
            if token is not None:
                return ResolvedCredential(token=token, user_scoped=True)
        return ResolvedCredential(token=self._app_token, user_scoped=False)

    def store(
        self,
        user_id: str,
        token: str,
        *,
        expires_at: datetime | None = None,
        installation_id: str | None = None,
    ) -> None:
        with self._db.session() as session:
            row = session.get(UserCredential, user_id)
            if row is None:
                row = UserCredential(user_id=user_id, token=token)
            row.token = token
            row.expires_at = expires_at
            row.installation_id = installation_id
            row.updated_at = utcnow()
            session.add(row)
            session.commit()
        logger.info("credential_stored", user_id=user_id, has_expiry=expires_at is not None)
