"""Server database using SQLAlchemy with SQLite.

This module provides:
- User management
- Token-based authentication
- Time-entry storage with per-user idempotency keys
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pomosync.server.models import ApiToken, Base, TimeEntry, User

if TYPE_CHECKING:
    from sqlalchemy import Engine

TOKEN_PREFIX = "ps_"


def hash_token(token: str) -> str:
    """Hash a token using SHA-256.

    Args:
        token: Raw token string.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def _as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; treat naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass
class NewTimeEntry:
    """Fields of a time entry to create."""

    project: str
    start_time: datetime
    end_time: datetime
    duration: int
    notes: str = ""
    task: str | None = None
    tags: list[str] | None = None
    is_running: bool = False
    entry_key: str | None = None


class Database:
    """SQLAlchemy database for users, tokens and time entries.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # check_same_thread=False: FastAPI runs sync routes in a threadpool
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")

        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        """Location of the database file."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === User operations ===

    def create_user(self, name: str) -> User:
        """Create a user.

        Raises:
            IntegrityError: If the name already exists.
        """
        with self._session() as session:
            user = User(name=name)
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

    def get_user(self, user_id: int) -> User | None:
        """Get a user by id."""
        with self._session() as session:
            user = session.get(User, user_id)
            if user:
                session.expunge(user)
            return user

    def get_user_by_name(self, name: str) -> User | None:
        """Get a user by name."""
        with self._session() as session:
            user = session.execute(select(User).where(User.name == name)).scalar_one_or_none()
            if user:
                session.expunge(user)
            return user

    def get_or_create_user(self, name: str) -> User:
        """Get a user by name, creating it if needed."""
        return self.get_user_by_name(name) or self.create_user(name)

    # === Token operations ===

    def create_token(
        self,
        user_id: int,
        name: str = "",
        expires_in: timedelta | None = None,
    ) -> tuple[str, ApiToken]:
        """Create a new authentication token.

        Args:
            user_id: User the token authenticates.
            name: Label (e.g. the device it is meant for).
            expires_in: Optional expiration duration.

        Returns:
            Tuple of (raw_token, ApiToken object).
        """
        raw_token = TOKEN_PREFIX + secrets.token_urlsafe(32)
        now = datetime.now(UTC)

        with self._session() as session:
            token = ApiToken(
                user_id=user_id,
                name=name,
                token_hash=hash_token(raw_token),
                created_at=now,
                expires_at=(now + expires_in) if expires_in else None,
            )
            session.add(token)
            session.commit()
            session.refresh(token)
            session.expunge(token)
            return raw_token, token

    def validate_token(self, raw_token: str) -> ApiToken | None:
        """Validate a token and return it if valid.

        Args:
            raw_token: Raw token string.

        Returns:
            ApiToken if valid, None otherwise.
        """
        with self._session() as session:
            stmt = select(ApiToken).where(
                ApiToken.token_hash == hash_token(raw_token),
                ApiToken.revoked == False,  # noqa: E712
            )
            token = session.execute(stmt).scalar_one_or_none()
            if token is None:
                return None
            if token.expires_at and _as_utc(token.expires_at) < datetime.now(UTC):
                return None
            session.expunge(token)
            return token

    def revoke_token(self, token_id: int) -> None:
        """Revoke a token."""
        with self._session() as session:
            token = session.get(ApiToken, token_id)
            if token:
                token.revoked = True
                session.commit()

    # === Time-entry operations ===

    def create_time_entry(self, user_id: int, data: NewTimeEntry) -> tuple[TimeEntry, bool]:
        """Store a time entry unless its key was already recorded.

        Args:
            user_id: Owner of the entry.
            data: Entry fields.

        Returns:
            Tuple of (entry, created). ``created`` is False when an entry
            with the same key already existed; that entry is returned.
        """
        if data.entry_key:
            existing = self.get_time_entry_by_key(user_id, data.entry_key)
            if existing:
                return existing, False

        with self._session() as session:
            entry = TimeEntry(
                user_id=user_id,
                project=data.project,
                task=data.task,
                start_time=_as_utc(data.start_time).astimezone(UTC),
                end_time=_as_utc(data.end_time).astimezone(UTC),
                duration=data.duration,
                notes=data.notes,
                tags=list(data.tags or []),
                is_running=data.is_running,
                entry_key=data.entry_key,
            )
            session.add(entry)
            try:
                session.commit()
            except IntegrityError:
                # Another device stored the same phase concurrently
                session.rollback()
                if not data.entry_key:
                    raise
                existing = self.get_time_entry_by_key(user_id, data.entry_key)
                if existing is None:
                    raise
                return existing, False
            session.refresh(entry)
            session.expunge(entry)
            return entry, True

    def get_time_entry(self, user_id: int, entry_id: int) -> TimeEntry | None:
        """Get one of a user's time entries."""
        with self._session() as session:
            entry = session.get(TimeEntry, entry_id)
            if entry is None or entry.user_id != user_id:
                return None
            session.expunge(entry)
            return entry

    def get_time_entry_by_key(self, user_id: int, entry_key: str) -> TimeEntry | None:
        """Get a user's time entry by its idempotency key."""
        with self._session() as session:
            stmt = select(TimeEntry).where(
                TimeEntry.user_id == user_id,
                TimeEntry.entry_key == entry_key,
            )
            entry = session.execute(stmt).scalar_one_or_none()
            if entry:
                session.expunge(entry)
            return entry

    def list_time_entries(self, user_id: int, limit: int = 50) -> list[TimeEntry]:
        """List a user's most recent time entries (newest first)."""
        with self._session() as session:
            stmt = (
                select(TimeEntry)
                .where(TimeEntry.user_id == user_id)
                .order_by(TimeEntry.start_time.desc(), TimeEntry.id.desc())
                .limit(limit)
            )
            entries = list(session.execute(stmt).scalars().all())
            for entry in entries:
                session.expunge(entry)
            return entries
