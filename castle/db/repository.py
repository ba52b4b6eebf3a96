"""Protocol repositories (SQLAlchemy implementation in sql_repository.py; the test suites use dictionary-backed mocks)."""

from datetime import datetime
from typing import Any, Optional, Protocol
from uuid import UUID

from castle.core.models import AuthTokenModel, OpeningModel, PuzzleModel, UserModel


class UserRepository(Protocol):
    """Users, their embedded saved game, and their bearer tokens."""

    def get_user(self, user_id: UUID) -> UserModel | None:
        """Get user by ID, if record exists."""
        ...

    def get_user_by_email(self, email: str) -> UserModel | None:
        """Get user by (unique) email, if record exists."""
        ...

    def create_user(self, email: str, password_hash: str) -> UserModel:
        """Store a new user and return it with its newly created ID."""
        ...

    def save_game_state(
        self, user_id: UUID, state: dict[str, Any], timestamp: datetime
    ) -> UserModel | None:
        """Overwrite the saved game of a user. None if the user does not exist."""
        ...

    def add_token(self, token: AuthTokenModel) -> None:
        """Register an issued bearer token."""
        ...

    def get_token(self, token: str) -> AuthTokenModel | None:
        """Look up a bearer token, if issued."""
        ...

    def delete_token(self, token: str) -> None:
        """Forget a bearer token (logout / expiry)."""
        ...


class OpeningRepository(Protocol):
    def list_openings(self, skip: int, limit: int) -> list[OpeningModel]:
        """One page of openings, sorted by name."""
        ...

    def count_openings(self) -> int: ...

    def get_opening(self, opening_id: UUID) -> OpeningModel | None:
        """Get opening by ID, if record exists."""
        ...

    def add_opening(self, name: str, fen: str, moves: str) -> OpeningModel: ...


class PuzzleRepository(Protocol):
    def first_puzzle(self) -> PuzzleModel | None:
        """The puzzle served on the puzzle page, if any is stored."""
        ...

    def add_puzzle(
        self, fen: str, moves: list[str], rating: Optional[int] = None, themes: Optional[list[str]] = None
    ) -> PuzzleModel: ...
