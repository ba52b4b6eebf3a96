"""Implementation of the repositories using SQLAlchemy"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from castle.core.exceptions import DuplicateRecordError
from castle.core.models import AuthTokenModel, OpeningModel, PuzzleModel, UserModel
from castle.db.schema import DBAuthToken, DBOpening, DBPuzzle, DBUser


class SQLUserRepository:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_user(self, user_id: UUID) -> UserModel | None:
        """Get user by ID, if record exists."""
        user_db = self._fetch_user(user_id)
        if user_db:
            return self._to_model(user_db)
        return None

    def get_user_by_email(self, email: str) -> UserModel | None:
        query = select(DBUser).where(DBUser.email == email)
        user_db = self.db.scalar(query)
        if user_db:
            return self._to_model(user_db)
        return None

    def create_user(self, email: str, password_hash: str) -> UserModel:
        """Store new user and return the stored data (with the newly created ID)."""
        user_db = DBUser(id=uuid4(), email=email, password_hash=password_hash)
        self.db.add(user_db)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateRecordError(f"User with {email=} already exists.") from exc
        self.db.refresh(user_db)
        return self._to_model(user_db)

    def save_game_state(
        self, user_id: UUID, state: dict[str, Any], timestamp: datetime
    ) -> UserModel | None:
        """Overwrite the embedded saved game. No versioning: last write wins."""
        user_db = self._fetch_user(user_id)
        if not user_db:
            return None
        user_db.saved_game_state = state
        user_db.last_game_timestamp = timestamp
        self.db.commit()
        self.db.refresh(user_db)
        return self._to_model(user_db)

    def add_token(self, token: AuthTokenModel) -> None:
        self.db.add(
            DBAuthToken(token=token.token, user_id=token.user_id, expires_at=token.expires_at)
        )
        self.db.commit()

    def get_token(self, token: str) -> AuthTokenModel | None:
        token_db = self.db.get(DBAuthToken, token)
        if not token_db:
            return None
        return AuthTokenModel(
            token=token_db.token, user_id=token_db.user_id, expires_at=token_db.expires_at
        )

    def delete_token(self, token: str) -> None:
        token_db = self.db.get(DBAuthToken, token)
        if token_db:
            self.db.delete(token_db)
            self.db.commit()

    def _fetch_user(self, user_id: UUID) -> DBUser | None:
        query = select(DBUser).where(DBUser.id == user_id)
        return self.db.scalar(query)

    def _to_model(self, user_db: DBUser) -> UserModel:
        """Convert SQLAlchemy model to data transfer model."""
        return UserModel(
            id=user_db.id,
            email=user_db.email,
            password_hash=user_db.password_hash,
            saved_game=user_db.saved_game_state,
            last_game_timestamp=user_db.last_game_timestamp,
        )


class SQLOpeningRepository:
    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def list_openings(self, skip: int, limit: int) -> list[OpeningModel]:
        query = select(DBOpening).order_by(DBOpening.name, DBOpening.id).offset(skip).limit(limit)
        return [self._to_model(opening) for opening in self.db.scalars(query)]

    def count_openings(self) -> int:
        return self.db.scalar(select(func.count()).select_from(DBOpening)) or 0

    def get_opening(self, opening_id: UUID) -> OpeningModel | None:
        opening_db = self.db.get(DBOpening, opening_id)
        if opening_db:
            return self._to_model(opening_db)
        return None

    def add_opening(self, name: str, fen: str, moves: str) -> OpeningModel:
        opening_db = DBOpening(id=uuid4(), name=name, fen=fen, moves=moves)
        self.db.add(opening_db)
        self.db.commit()
        self.db.refresh(opening_db)
        return self._to_model(opening_db)

    def _to_model(self, opening_db: DBOpening) -> OpeningModel:
        return OpeningModel(
            id=opening_db.id, name=opening_db.name, fen=opening_db.fen, moves=opening_db.moves
        )


class SQLPuzzleRepository:
    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def first_puzzle(self) -> PuzzleModel | None:
        query = select(DBPuzzle).order_by(DBPuzzle.created_at).limit(1)
        puzzle_db = self.db.scalar(query)
        if puzzle_db:
            return self._to_model(puzzle_db)
        return None

    def add_puzzle(
        self, fen: str, moves: list[str], rating: Optional[int] = None, themes: Optional[list[str]] = None
    ) -> PuzzleModel:
        puzzle_db = DBPuzzle(id=uuid4(), fen=fen, moves=moves, rating=rating, themes=themes or [])
        self.db.add(puzzle_db)
        self.db.commit()
        self.db.refresh(puzzle_db)
        return self._to_model(puzzle_db)

    def _to_model(self, puzzle_db: DBPuzzle) -> PuzzleModel:
        return PuzzleModel(
            id=puzzle_db.id,
            fen=puzzle_db.fen,
            moves=list(puzzle_db.moves),
            rating=puzzle_db.rating,
            themes=list(puzzle_db.themes),
        )
