"""Session management for the dialogue flow."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from app.config import settings
from app.core.intelligence.normalize import mask_patient_id
from .models import SessionData

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# Session key prefix
SESSION_PREFIX = "scheduling:session:"


class SessionStore(ABC):
    """Key-value storage for serialized sessions."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a serialized session, or None."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a serialized session."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a session. Returns True if it existed."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List stored keys."""


class InMemorySessionStore(SessionStore):
    """Process-local store. Sessions are lost on restart."""

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)


class PatientLock:
    """
    asyncio.Lock that counts its holder and waiters.

    A waiter woken by a release does not hold the lock until it resumes, so
    ``locked()`` alone cannot tell whether a lock may be discarded.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._users = 0

    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def in_use(self) -> bool:
        """True while held or awaited."""
        return self._users > 0

    async def __aenter__(self) -> "PatientLock":
        self._users += 1
        try:
            await self._lock.acquire()
        except BaseException:
            self._users -= 1
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._lock.release()
        self._users -= 1


class SessionManager:
    """
    Session manager for conversation state.

    Key pattern: scheduling:session:{patient_id}

    Sessions are stored serialized, so every ``get`` returns an independent
    copy: changes are only visible to other readers after ``save``.

    Concurrency: callers hold ``lock(patient_id)`` for the whole
    read-decide-write of a message. The sweeper skips sessions whose lock
    is held or awaited.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        ttl_seconds: Optional[int] = None,
        sweep_interval_seconds: Optional[int] = None,
    ):
        """Initialize session manager.

        Args:
            store: Backing store (in-memory by default)
            ttl_seconds: Idle time after which a session expires
            sweep_interval_seconds: Period of the background sweep
        """
        self._store = store if store is not None else InMemorySessionStore()
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self._sweep_interval = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else settings.session_sweep_interval_seconds
        )
        self._locks: dict[str, PatientLock] = {}
        self._sweeper_task: Optional[asyncio.Task] = None

    def _key(self, patient_id: str) -> str:
        """Generate store key."""
        return f"{SESSION_PREFIX}{patient_id}"

    def _patient_id(self, key: str) -> str:
        return key[len(SESSION_PREFIX):]

    def lock(self, patient_id: str) -> PatientLock:
        """Get the lock serializing messages from one patient."""
        lock = self._locks.get(patient_id)
        if lock is None:
            lock = PatientLock()
            self._locks[patient_id] = lock
        return lock

    async def get(self, patient_id: str) -> Optional[SessionData]:
        """
        Get session by patient id.

        Expired sessions are deleted and reported as absent.

        Args:
            patient_id: Patient identifier

        Returns:
            SessionData or None if not found
        """
        data = await self._store.get(self._key(patient_id))
        if data is None:
            return None

        session = SessionData.from_json(data)
        if session.is_expired(self._ttl):
            logger.debug(f"Session expired on lookup: {mask_patient_id(patient_id)}")
            await self._store.delete(self._key(patient_id))
            return None
        return session

    async def create(self, patient_id: str) -> SessionData:
        """Create a new session in WELCOME (not saved until ``save``)."""
        logger.debug(f"Session created: {mask_patient_id(patient_id)}")
        return SessionData(patient_id=patient_id)

    async def get_or_create(self, patient_id: str) -> SessionData:
        """
        Get existing session or create new one.

        Args:
            patient_id: Patient identifier

        Returns:
            Existing or new SessionData
        """
        session = await self.get(patient_id)
        if session:
            return session
        return await self.create(patient_id)

    async def save(self, session: SessionData) -> bool:
        """
        Save session.

        Args:
            session: SessionData to save

        Returns:
            True if saved successfully
        """
        session.touch()
        await self._store.set(self._key(session.patient_id), session.to_json())
        logger.debug(
            f"Session saved: {mask_patient_id(session.patient_id)} | state={session.state.value}"
        )
        return True

    async def delete(self, patient_id: str) -> bool:
        """
        Delete a session.

        Args:
            patient_id: Patient identifier

        Returns:
            True if deleted
        """
        deleted = await self._store.delete(self._key(patient_id))
        if deleted:
            logger.debug(f"Session deleted: {mask_patient_id(patient_id)}")
        return deleted

    async def reset(self, patient_id: str) -> SessionData:
        """Reset a patient's session to WELCOME with empty data."""
        session = await self.get_or_create(patient_id)
        session.reset()
        await self.save(session)
        return session

    # === Expiry ===

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Remove sessions idle longer than the TTL.

        Sessions whose lock is held or awaited are skipped.

        Returns:
            Number of sessions removed
        """
        now = now or _utcnow()
        removed = 0

        for key in await self._store.keys():
            patient_id = self._patient_id(key)
            lock = self._locks.get(patient_id)
            if lock is not None and lock.in_use:
                continue

            data = await self._store.get(key)
            if data is None:
                continue

            if SessionData.from_json(data).is_expired(self._ttl, now=now):
                await self._store.delete(key)
                self._locks.pop(patient_id, None)
                removed += 1

        # Drop idle locks left behind by sessions that were never saved
        for patient_id in list(self._locks):
            lock = self._locks[patient_id]
            if not lock.in_use and await self._store.get(self._key(patient_id)) is None:
                del self._locks[patient_id]

        if removed:
            logger.info(f"Session sweep removed {removed} expired session(s)")
        return removed

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def start_sweeper(self) -> None:
        """Start the periodic sweep task (idempotent)."""
        if self._sweeper_task is None or self._sweeper_task.done():
            self._sweeper_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"Session sweeper started (every {self._sweep_interval}s, ttl {self._ttl}s)")

    async def stop_sweeper(self) -> None:
        """Cancel the periodic sweep task."""
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
            self._sweeper_task = None
            logger.info("Session sweeper stopped")


# Singleton
_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """Get singleton SessionManager."""
    global _manager
    if _manager is None:
        _manager = SessionManager()
    return _manager
