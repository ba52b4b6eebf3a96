"""Database tables / schema"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DBUser(Base):
    """A user document. The saved game is embedded in it, as a single JSON blob (last write wins)."""

    __tablename__ = "users"
    id: Mapped[UUID] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(unique=True, index=True)
    password_hash: Mapped[str]
    saved_game_state: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    last_game_timestamp: Mapped[Optional[datetime]]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBAuthToken(Base):
    __tablename__ = "auth_tokens"
    token: Mapped[str] = mapped_column(primary_key=True)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    expires_at: Mapped[datetime]


class DBOpening(Base):
    __tablename__ = "openings"
    id: Mapped[UUID] = mapped_column(primary_key=True)
    name: Mapped[str]
    fen: Mapped[str]
    moves: Mapped[str]  # e.g. "1. e4 e5 2. Nf3 Nc6"


class DBPuzzle(Base):
    __tablename__ = "puzzles"
    id: Mapped[UUID] = mapped_column(primary_key=True)
    fen: Mapped[str]
    moves: Mapped[list[str]] = mapped_column(JSON, default=list)
    rating: Mapped[Optional[int]]
    themes: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
