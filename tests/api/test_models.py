from uuid import UUID, uuid4

import pytest

from castle.api.models import (
    AuthResponse,
    OpeningsPage,
    PromptRequest,
    RegisterRequest,
    SavedGameState,
    SaveGameRequest,
    UserResponse,
)
from castle.core.exceptions import InvalidRequestError
from castle.core.shared_types import Color, Difficulty, Phase


@pytest.fixture
def mock_id() -> UUID:
    return uuid4()


# -- Validation - RegisterRequest --
@pytest.mark.parametrize("email, password", [("", "secret"), ("anna@example.com", ""), ("   ", "secret")])
def test_missing_credentials(email: str, password: str) -> None:
    with pytest.raises(InvalidRequestError):
        _ = RegisterRequest(email=email, password=password)


# -- Validation - SavedGameState --
def test_saved_game_from_browser_payload() -> None:
    """The browser client writes camelCase keys; older payloads have no phase."""
    state = SavedGameState.model_validate(
        {
            "fen": "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1",
            "pgn": "1. e4 *",
            "moveHistory": ["e4"],
            "userColor": "white",
            "opponent": "Bobby Fischer",
            "mode": "hard",
            "gameStarted": True,
        }
    )
    assert state.move_history == ["e4"]
    assert state.user_color == Color.WHITE
    assert state.mode == Difficulty.HARD
    assert state.game_started
    assert state.phase == Phase.FREE_PLAY


def test_saved_game_dumps_camel_case() -> None:
    dumped = SavedGameState(move_history=["d4"], game_started=True).model_dump(mode="json", by_alias=True)
    assert dumped["moveHistory"] == ["d4"]
    assert dumped["gameStarted"] is True
    assert dumped["userColor"] == "white"
    assert dumped["phase"] == "free-play"


@pytest.mark.parametrize(
    "invalid_fen",
    [
        "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0",  # only 5 space-separated values
        "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1 extra",  # too many space-separated values
    ],
)
def test_invalid_fen(invalid_fen: str) -> None:
    """Structurally invalid FEN: more or less than 6 space-separated fields."""
    with pytest.raises(InvalidRequestError):
        _ = SavedGameState(fen=invalid_fen)


def test_save_game_request_aliases(mock_id: UUID) -> None:
    request = SaveGameRequest.model_validate({"userId": str(mock_id), "gameState": {"moveHistory": ["e4"]}})
    assert request.user_id == mock_id
    assert request.game_state.move_history == ["e4"]


def test_empty_prompt() -> None:
    with pytest.raises(InvalidRequestError):
        _ = PromptRequest(prompt="  ")


# -- Serialization - responses --
def test_response_aliases(mock_id: UUID) -> None:
    assert AuthResponse(token="t", user_id=mock_id, message="ok").model_dump(by_alias=True)["userId"] == mock_id
    assert UserResponse(username="anna@example.com", id=mock_id).model_dump(by_alias=True)["_id"] == mock_id

    page = OpeningsPage(openings=[], current_page=2, total_pages=3, openings_per_page=10)
    assert page.model_dump(by_alias=True) == {
        "openings": [],
        "currentPage": 2,
        "totalPages": 3,
        "openingsPerPage": 10,
    }
