"""Tests of the HTTP endpoints, run against the in-memory database."""

from typing import Generator
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from castle.api.app import create_app
from castle.api.routes import get_language_model
from castle.core.exceptions import LanguageModelError
from castle.core.models import STARTING_FEN
from castle.db.database import get_db
from castle.db.sql_repository import SQLOpeningRepository, SQLPuzzleRepository


# --- MOCK DEPENDENCIES ----
class MockLanguageModel:
    def __init__(self, reply: str = "e4", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error

    async def complete(self, prompt: str) -> str:
        if self.error:
            raise self.error
        return self.reply

    async def stream(self, prompt: str):
        if self.error:
            raise self.error
        return self._pieces()

    async def _pieces(self):
        for piece in self.reply.split(" "):
            yield piece + " "


@pytest.fixture
def language_model() -> MockLanguageModel:
    return MockLanguageModel()


@pytest.fixture
def client(db_session_repo: Session, language_model: MockLanguageModel) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session_repo

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_language_model] = lambda: language_model
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client: TestClient, email: str = "bobby@example.com", password: str = "fischer") -> dict:
    response = client.post("/api/auth/register", json={"email": email, "password": password})
    assert response.status_code == 201
    return response.json()


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


# --- AUTH ---
def test_register(client: TestClient) -> None:
    body = register(client)
    assert body["message"] == "Registration successful"
    assert body["token"]
    assert body["userId"]


@pytest.mark.parametrize("payload", [{"email": "bobby@example.com"}, {"email": "", "password": "x"}, {}])
def test_register_missing_fields(client: TestClient, payload: dict) -> None:
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 400
    assert response.json() == {"message": "Please provide all required fields"}


def test_register_existing_user(client: TestClient) -> None:
    register(client)
    response = client.post("/api/auth/register", json={"email": "bobby@example.com", "password": "other"})
    assert response.status_code == 409
    assert response.json() == {"message": "User already exists"}


def test_login(client: TestClient) -> None:
    registered = register(client)
    response = client.post("/api/auth/login", json={"email": "bobby@example.com", "password": "fischer"})
    assert response.status_code == 200
    assert response.json()["userId"] == registered["userId"]

    response = client.post("/api/auth/login", json={"email": "bobby@example.com", "password": "spassky"})
    assert response.status_code == 401
    assert response.json() == {"message": "Invalid credentials"}


def test_logout(client: TestClient) -> None:
    token = register(client)["token"]
    assert client.post("/api/auth/logout", headers=auth(token)).status_code == 200
    assert client.get("/api/user", headers=auth(token)).status_code == 401


# --- USER ---
def test_user_profile(client: TestClient) -> None:
    registered = register(client)
    response = client.get("/api/user", params={"id": registered["userId"]}, headers=auth(registered["token"]))
    assert response.status_code == 200
    assert response.json() == {"username": "bobby@example.com", "_id": registered["userId"]}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer nonsense"}, {"Authorization": "Basic abc"}])
def test_user_requires_token(client: TestClient, headers: dict) -> None:
    response = client.get("/api/user", headers=headers)
    assert response.status_code == 401
    assert "message" in response.json()


def test_token_only_reaches_its_own_user(client: TestClient) -> None:
    bobby = register(client)
    boris = register(client, email="boris@example.com", password="spassky")
    response = client.get("/api/user", params={"id": boris["userId"]}, headers=auth(bobby["token"]))
    assert response.status_code == 403


# --- SAVED GAME ---
def test_save_and_load_game(client: TestClient) -> None:
    registered = register(client)
    headers = auth(registered["token"])

    empty = client.get("/api/game-state/game", params={"id": registered["userId"]}, headers=headers)
    assert empty.json() == {"savedGameState": None, "lastGameTimestamp": None}

    state = {
        "fen": "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1",
        "pgn": "1. e4 *",
        "moveHistory": ["e4"],
        "userColor": "white",
        "opponent": "Castle.ai",
        "mode": "medium",
        "gameStarted": True,
        "phase": "free-play",
    }
    saved = client.post(
        "/api/game-state/game", json={"userId": registered["userId"], "gameState": state}, headers=headers
    )
    assert saved.status_code == 200

    loaded = client.get("/api/game-state/game", params={"id": registered["userId"]}, headers=headers).json()
    assert loaded["savedGameState"] == state
    assert loaded["lastGameTimestamp"] is not None


def test_save_game_for_someone_else(client: TestClient) -> None:
    registered = register(client)
    response = client.post(
        "/api/game-state/game",
        json={"userId": str(uuid4()), "gameState": {"moveHistory": []}},
        headers=auth(registered["token"]),
    )
    assert response.status_code == 403


def test_save_game_with_broken_fen(client: TestClient) -> None:
    registered = register(client)
    response = client.post(
        "/api/game-state/game",
        json={"userId": registered["userId"], "gameState": {"fen": "only three parts"}},
        headers=auth(registered["token"]),
    )
    assert response.status_code == 400


# --- CATALOG ---
def test_openings(client: TestClient, db_session_repo: Session) -> None:
    repo = SQLOpeningRepository(db_session_repo)
    for name in ["Ruy Lopez", "Italian Game", "Caro-Kann Defense"]:
        repo.add_opening(name, STARTING_FEN, "1. e4 e5")

    body = client.get("/api/openings", params={"page": 1, "limit": 2}).json()
    assert [opening["name"] for opening in body["openings"]] == ["Caro-Kann Defense", "Italian Game"]
    assert body["currentPage"] == 1
    assert body["totalPages"] == 2
    assert body["openingsPerPage"] == 2

    opening_id = body["openings"][0]["_id"]
    single = client.get(f"/api/openings/{opening_id}").json()
    assert single["opening"]["name"] == "Caro-Kann Defense"


def test_openings_bad_paging(client: TestClient) -> None:
    response = client.get("/api/openings", params={"page": 0})
    assert response.status_code == 400
    assert response.json() == {"message": "Invalid page or limit parameter"}


def test_unknown_opening(client: TestClient) -> None:
    response = client.get(f"/api/openings/{uuid4()}")
    assert response.status_code == 404
    assert response.json() == {"message": "Opening not found"}


def test_puzzles(client: TestClient, db_session_repo: Session) -> None:
    missing = client.get("/api/puzzles")
    assert missing.status_code == 404
    assert missing.json() == {"message": "No puzzle found in the collection"}

    SQLPuzzleRepository(db_session_repo).add_puzzle("6k1/5ppp/8/8/8/8/5PPP/3R2K1 w - - 0 1", ["Rd8#"])
    body = client.get("/api/puzzles").json()
    assert body["moves"] == ["Rd8#"]
    assert body["_id"]


# --- LANGUAGE MODEL ---
def test_openai_pass_through(client: TestClient) -> None:
    response = client.post("/api/openai", json={"prompt": "your move"})
    assert response.status_code == 200
    assert response.json() == {"response": "e4"}


def test_openai_failure(client: TestClient, language_model: MockLanguageModel) -> None:
    language_model.error = LanguageModelError("Language model call failed")
    response = client.post("/api/openai", json={"prompt": "your move"})
    assert response.status_code == 502
    assert response.json() == {"message": "Language model call failed"}


def test_openai_stream(client: TestClient, language_model: MockLanguageModel) -> None:
    language_model.reply = "Control the center"
    response = client.post("/api/openai-stream", json={"prompt": "advice"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Control the center "


def test_openai_stream_failure(client: TestClient, language_model: MockLanguageModel) -> None:
    language_model.error = LanguageModelError("Language model call failed")
    response = client.post("/api/openai-stream", json={"prompt": "advice"})
    assert response.status_code == 502
    assert response.json() == {"message": "Language model call failed"}


def test_openai_stream_empty_prompt(client: TestClient) -> None:
    response = client.post("/api/openai-stream", json={"prompt": "  "})
    assert response.status_code == 400
