"""Unit tests for castle/db/sql_repository.py"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from castle.core.exceptions import DuplicateRecordError
from castle.core.models import STARTING_FEN, AuthTokenModel, UserModel
from castle.db.sql_repository import SQLOpeningRepository, SQLPuzzleRepository, SQLUserRepository


# --- USERS ---
def test_create_user(db_session_repo: Session) -> None:
    repo = SQLUserRepository(db_session_repo)
    user = repo.create_user("anna@example.com", "hashed")
    assert isinstance(user, UserModel)
    assert user.email == "anna@example.com"
    assert user.saved_game is None
    assert user.last_game_timestamp is None


def test_get_user_by_id_and_email(db_session_repo: Session) -> None:
    repo = SQLUserRepository(db_session_repo)
    created = repo.create_user("anna@example.com", "hashed")
    assert repo.get_user(created.id) == created
    assert repo.get_user_by_email("anna@example.com") == created


def test_get_unknown_user(db_session_repo: Session) -> None:
    """
    Should return None if ID does not match anything in database.

    NOTE with an empty database, any id is a valid test case.
    """
    repo = SQLUserRepository(db_session_repo)
    assert repo.get_user(uuid4()) is None
    assert repo.get_user_by_email("ghost@example.com") is None


def test_duplicate_email(db_session_repo: Session) -> None:
    repo = SQLUserRepository(db_session_repo)
    repo.create_user("anna@example.com", "hashed")
    with pytest.raises(DuplicateRecordError):
        repo.create_user("anna@example.com", "another")

    # Session is still usable after the rollback
    assert repo.get_user_by_email("anna@example.com") is not None


def test_save_game_state(db_session_repo: Session) -> None:
    repo = SQLUserRepository(db_session_repo)
    user = repo.create_user("anna@example.com", "hashed")
    stamp = datetime(2024, 5, 1, 10, 30)
    state = {"fen": STARTING_FEN, "moveHistory": [], "gameStarted": False}

    updated = repo.save_game_state(user.id, state, stamp)
    assert updated is not None
    assert updated.saved_game == state
    assert updated.last_game_timestamp == stamp

    # Overwrite
    newer = {"fen": STARTING_FEN, "moveHistory": ["e4"], "gameStarted": True}
    repo.save_game_state(user.id, newer, stamp)
    assert repo.get_user(user.id).saved_game == newer


def test_save_game_state_for_unknown_user(db_session_repo: Session) -> None:
    repo = SQLUserRepository(db_session_repo)
    assert repo.save_game_state(uuid4(), {}, datetime.now(timezone.utc)) is None


# --- TOKENS ---
def test_token_lifecycle(db_session_repo: Session) -> None:
    repo = SQLUserRepository(db_session_repo)
    user = repo.create_user("anna@example.com", "hashed")
    expires_at = datetime(2030, 1, 1, 0, 0)
    repo.add_token(AuthTokenModel(token="abc", user_id=user.id, expires_at=expires_at))

    token = repo.get_token("abc")
    assert token is not None
    assert token.user_id == user.id
    assert token.expires_at == expires_at

    repo.delete_token("abc")
    assert repo.get_token("abc") is None
    repo.delete_token("abc")  # deleting twice is harmless


# --- OPENINGS ---
def test_openings_paged_by_name(db_session_repo: Session) -> None:
    repo = SQLOpeningRepository(db_session_repo)
    for name in ["Ruy Lopez", "Caro-Kann Defense", "Italian Game"]:
        repo.add_opening(name, STARTING_FEN, "1. e4")

    assert repo.count_openings() == 3
    assert [opening.name for opening in repo.list_openings(skip=0, limit=2)] == ["Caro-Kann Defense", "Italian Game"]
    assert [opening.name for opening in repo.list_openings(skip=2, limit=2)] == ["Ruy Lopez"]


def test_get_opening(db_session_repo: Session) -> None:
    repo = SQLOpeningRepository(db_session_repo)
    stored = repo.add_opening("London System", STARTING_FEN, "1. d4 d5 2. Bf4")
    assert repo.get_opening(stored.id) == stored
    assert repo.get_opening(uuid4()) is None


# --- PUZZLES ---
def test_first_puzzle(db_session_repo: Session) -> None:
    repo = SQLPuzzleRepository(db_session_repo)
    assert repo.first_puzzle() is None

    first = repo.add_puzzle("6k1/5ppp/8/8/8/8/5PPP/3R2K1 w - - 0 1", ["Rd8#"], rating=600, themes=["backRank"])
    found = repo.first_puzzle()
    assert found == first
    assert found.themes == ["backRank"]


def test_puzzle_defaults(db_session_repo: Session) -> None:
    repo = SQLPuzzleRepository(db_session_repo)
    puzzle = repo.add_puzzle(STARTING_FEN, ["e4"])
    assert puzzle.rating is None
    assert puzzle.themes == []
