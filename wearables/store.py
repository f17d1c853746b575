"""
CredentialStore: durable key/value persistence for wearable credentials.

Values are opaque strings (JSON produced by the pydantic records).  A batch
passed to ``write`` is applied atomically: either every change lands or none
does.  ``lock(provider_id)`` hands out a per-provider mutex that callers hold
around a read-modify-write of that provider's keys.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import CredentialEntry
from wearables.encryption import InvalidToken, TokenCipher
from wearables.errors import StorageError

logger = logging.getLogger(__name__)

# ── Storage keys ───────────────────────────────────────────────────────

TOKEN_PREFIX = "wearable_token_"
STATE_PREFIX = "wearable_state_"
CONNECTION_PREFIX = "wearable_connection_"


def token_key(provider_id: str) -> str:
    return f"{TOKEN_PREFIX}{provider_id}"


def state_key(provider_id: str) -> str:
    return f"{STATE_PREFIX}{provider_id}"


def connection_key(provider_id: str) -> str:
    return f"{CONNECTION_PREFIX}{provider_id}"


class CredentialStore(ABC):
    """Abstract secure key/value store."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        ...

    @abstractmethod
    async def write(self, changes: Mapping[str, Optional[str]]) -> None:
        """
        Apply a batch atomically.

        Parameters
        ----------
        changes : mapping
            key → new value; a value of ``None`` deletes the key.
        """
        ...

    async def put(self, key: str, value: str) -> None:
        await self.write({key: value})

    async def delete(self, *keys: str) -> None:
        await self.write({k: None for k in keys})

    def lock(self, provider_id: str) -> asyncio.Lock:
        """Per-provider mutex for read-modify-write sequences."""
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = self._locks[provider_id] = asyncio.Lock()
        return lock


class MemoryCredentialStore(CredentialStore):
    """In-process store for tests and ephemeral sessions."""

    def __init__(self) -> None:
        super().__init__()
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def write(self, changes: Mapping[str, Optional[str]]) -> None:
        staged = dict(self._data)
        for key, value in changes.items():
            if value is None:
                staged.pop(key, None)
            else:
                staged[key] = value
        self._data = staged

    def keys(self) -> list[str]:
        return sorted(self._data)


class SqlCredentialStore(CredentialStore):
    """
    SQLAlchemy-backed store; values are Fernet-encrypted before they reach
    the database.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
    ) -> None:
        super().__init__()
        self._session_factory = session_factory
        self._cipher = cipher

    async def get(self, key: str) -> Optional[str]:
        try:
            async with self._session_factory() as session:
                row = await session.get(CredentialEntry, key)
                raw = row.value if row is not None else None
        except SQLAlchemyError as exc:
            logger.error("Credential read failed for %s: %s", key, exc)
            raise StorageError(key, f"read failed: {exc}") from exc

        if raw is None:
            return None
        try:
            return self._cipher.decrypt(raw)
        except InvalidToken as exc:
            logger.error("Credential %s could not be decrypted with the configured key", key)
            raise StorageError(key, "stored value could not be decrypted") from exc

    async def write(self, changes: Mapping[str, Optional[str]]) -> None:
        if not changes:
            return
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for key, value in changes.items():
                        row = await session.get(CredentialEntry, key)
                        if value is None:
                            if row is not None:
                                await session.delete(row)
                        elif row is None:
                            session.add(CredentialEntry(key=key, value=self._cipher.encrypt(value)))
                        else:
                            row.value = self._cipher.encrypt(value)
        except SQLAlchemyError as exc:
            keys = ", ".join(changes)
            logger.error("Credential write failed for [%s]: %s", keys, exc)
            raise StorageError(keys, f"write failed: {exc}") from exc
