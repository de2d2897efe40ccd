"""
Per-user OAuth credential and pending-state persistence.

Records live in a key-value backend addressed by ``(pk, sk)``. Writes surface
backend failures as ``StorageWriteError``; reads report them through
``StoreLookup`` so each caller decides whether a broken backend means "absent".
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Protocol, TypeVar

from pydantic import ValidationError

from app.core.errors import StorageWriteError
from app.models.oauth import OAuthCredentials, PendingState

logger = logging.getLogger(__name__)

T = TypeVar("T")

CREDENTIALS_SORT_KEY = "oauth-credentials"
STATE_PARTITION_PREFIX = "oauth-state#"
STATE_SORT_KEY = "oauth-state"
DEFAULT_STATE_TTL_SECONDS = 15 * 60


class RecordBackend(Protocol):
    def put_item(self, item: Dict[str, Any]) -> None: ...

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]: ...

    def delete_item(self, *, partition_key: str, sort_key: str) -> None: ...

    def scan_partition_prefix(self, partition_prefix: str) -> list[Dict[str, Any]]: ...


class LookupStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    BACKEND_ERROR = "backend_error"


@dataclass(frozen=True)
class StoreLookup(Generic[T]):
    """Outcome of a store read."""

    status: LookupStatus
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND

    def or_none(self) -> Optional[T]:
        """Treat backend errors as absent."""
        return self.value if self.found else None


def _now_ms() -> int:
    return int(time.time() * 1000)


def _credentials_key(user_id: str) -> Dict[str, str]:
    return {"pk": f"user#{user_id}", "sk": CREDENTIALS_SORT_KEY}


def _state_key(state: str) -> Dict[str, str]:
    return {"pk": f"{STATE_PARTITION_PREFIX}{state}", "sk": STATE_SORT_KEY}


class OAuthCredentialStore:
    """Maps users to credential records and state tokens to pending authorizations."""

    def __init__(
        self,
        backend: RecordBackend,
        *,
        state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        single_use_state: bool = False,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._backend = backend
        self._state_ttl_ms = state_ttl_seconds * 1000
        self._single_use_state = single_use_state
        self._clock = clock

    def _write(self, action: str, operation: Callable[[], None]) -> None:
        try:
            operation()
        except Exception as exc:
            logger.error("Credential store failed to %s: %s", action, exc)
            raise StorageWriteError(f"Failed to {action}.") from exc

    def _read(self, key: Dict[str, str]) -> StoreLookup[Dict[str, Any]]:
        try:
            item = self._backend.get_item(partition_key=key["pk"], sort_key=key["sk"])
        except Exception as exc:
            logger.warning("Credential store read failed for %s: %s", key["pk"], exc)
            return StoreLookup(LookupStatus.BACKEND_ERROR, error=exc)
        if not item:
            return StoreLookup(LookupStatus.NOT_FOUND)
        return StoreLookup(LookupStatus.FOUND, value=item)

    # Credentials

    def save_credentials(self, user_id: str, credentials: OAuthCredentials) -> None:
        """Upsert the credential record for ``user_id``, replacing it entirely."""
        item = {**_credentials_key(user_id), "user_id": user_id, **credentials.model_dump()}
        self._write("save credentials", lambda: self._backend.put_item(item))

    def lookup_credentials(self, user_id: str) -> StoreLookup[OAuthCredentials]:
        result = self._read(_credentials_key(user_id))
        if not result.found:
            return StoreLookup(result.status, error=result.error)
        try:
            credentials = OAuthCredentials.model_validate(result.value)
        except ValidationError as exc:
            logger.warning("Stored credentials for user %s are unreadable: %s", user_id, exc)
            return StoreLookup(LookupStatus.BACKEND_ERROR, error=exc)
        return StoreLookup(LookupStatus.FOUND, value=credentials)

    def get_credentials(self, user_id: str) -> Optional[OAuthCredentials]:
        return self.lookup_credentials(user_id).or_none()

    def delete_credentials(self, user_id: str) -> None:
        key = _credentials_key(user_id)
        self._write(
            "delete credentials",
            lambda: self._backend.delete_item(partition_key=key["pk"], sort_key=key["sk"]),
        )

    def has_credentials(self, user_id: str) -> bool:
        credentials = self.get_credentials(user_id)
        return credentials is not None and bool(credentials.access_token)

    # Pending authorization state

    def save_state(self, state: str, user_id: str) -> PendingState:
        pending = PendingState(state=state, user_id=user_id, timestamp=self._clock())
        item = {**_state_key(state), **pending.model_dump()}
        self._write("save state", lambda: self._backend.put_item(item))
        return pending

    def lookup_state(self, state: str) -> StoreLookup[PendingState]:
        result = self._read(_state_key(state))
        if not result.found:
            return StoreLookup(result.status, error=result.error)
        try:
            pending = PendingState.model_validate(result.value)
        except ValidationError as exc:
            return StoreLookup(LookupStatus.BACKEND_ERROR, error=exc)
        return StoreLookup(LookupStatus.FOUND, value=pending)

    def validate_state(self, state: str) -> Optional[str]:
        """Return the user who issued ``state`` while it is within its TTL.

        Expired records are deleted. With single-use states enabled a record is
        also deleted once it validates.
        """
        pending = self.lookup_state(state).or_none()
        if pending is None:
            return None

        if pending.is_expired(now_ms=self._clock(), ttl_ms=self._state_ttl_ms):
            logger.info("OAuth state for user %s expired", pending.user_id)
            self._discard_state(state)
            return None

        if self._single_use_state:
            self._discard_state(state)
        return pending.user_id

    def _discard_state(self, state: str) -> None:
        key = _state_key(state)
        try:
            self._backend.delete_item(partition_key=key["pk"], sort_key=key["sk"])
        except Exception as exc:
            logger.warning("Failed to delete OAuth state record: %s", exc)

    def cleanup_expired_states(self) -> int:
        """Delete every expired pending-state record and return how many were removed."""
        now = self._clock()
        removed = 0
        try:
            items = self._backend.scan_partition_prefix(STATE_PARTITION_PREFIX)
        except Exception as exc:
            logger.warning("Failed to scan OAuth state records: %s", exc)
            return removed
        for item in items:
            try:
                pending = PendingState.model_validate(item)
            except ValidationError:
                continue
            if not pending.is_expired(now_ms=now, ttl_ms=self._state_ttl_ms):
                continue
            key = _state_key(pending.state)
            self._write(
                "delete expired state",
                lambda: self._backend.delete_item(
                    partition_key=key["pk"], sort_key=key["sk"]
                ),
            )
            removed += 1
        if removed:
            logger.info("Removed %d expired OAuth state records", removed)
        return removed


__all__ = [
    "LookupStatus",
    "OAuthCredentialStore",
    "RecordBackend",
    "StoreLookup",
]
