"""HTTP endpoints of the persistence service, the lesson catalog and the language-model pass-through."""

from datetime import timedelta
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from castle.api.models import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    OpeningResponse,
    OpeningsPage,
    PromptRequest,
    PromptResponse,
    Puzzle,
    RegisterRequest,
    SavedGameResponse,
    SaveGameRequest,
    UserResponse,
)
from castle.core.config import get_settings
from castle.core.exceptions import AccessDeniedError, AuthenticationError
from castle.db.database import get_db
from castle.db.sql_repository import SQLOpeningRepository, SQLPuzzleRepository, SQLUserRepository
from castle.services.account_service import AccountService
from castle.services.catalog_service import CatalogService
from castle.services.game_state_service import GameStateService
from castle.services.language_model import LanguageModel, OpenAIChatModel

router = APIRouter()


# --- DEPENDENCIES ---
def get_account_service(db: Annotated[Session, Depends(get_db)]) -> AccountService:
    ttl = timedelta(minutes=get_settings().token_ttl_minutes)
    return AccountService(SQLUserRepository(db), token_ttl=ttl)


def get_game_state_service(db: Annotated[Session, Depends(get_db)]) -> GameStateService:
    return GameStateService(SQLUserRepository(db))


def get_catalog_service(db: Annotated[Session, Depends(get_db)]) -> CatalogService:
    return CatalogService(SQLOpeningRepository(db), SQLPuzzleRepository(db))


def get_language_model() -> LanguageModel:
    return OpenAIChatModel.from_settings(get_settings())


def bearer_token(authorization: Annotated[Optional[str], Header()] = None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("No token provided")
    return authorization.removeprefix("Bearer ").strip()


def current_user_id(
    token: Annotated[str, Depends(bearer_token)],
    accounts: Annotated[AccountService, Depends(get_account_service)],
) -> UUID:
    return accounts.authenticate(token)


def owned_user_id(user_id: UUID, requested: Optional[UUID]) -> UUID:
    """A token only ever reaches the data of its own user."""
    if requested is not None and requested != user_id:
        raise AccessDeniedError("Access denied")
    return user_id


# --- AUTH ---
@router.post("/api/auth/register", response_model=AuthResponse, response_model_by_alias=True, status_code=201)
def register(
    request: RegisterRequest, accounts: Annotated[AccountService, Depends(get_account_service)]
) -> AuthResponse:
    return accounts.register(request)


@router.post("/api/auth/login", response_model=AuthResponse, response_model_by_alias=True)
def login(request: LoginRequest, accounts: Annotated[AccountService, Depends(get_account_service)]) -> AuthResponse:
    return accounts.login(request)


@router.post("/api/auth/logout", response_model=MessageResponse)
def logout(
    token: Annotated[str, Depends(bearer_token)],
    accounts: Annotated[AccountService, Depends(get_account_service)],
) -> MessageResponse:
    accounts.logout(token)
    return MessageResponse(message="Logged out")


@router.get("/api/user", response_model=UserResponse, response_model_by_alias=True)
def get_user(
    user_id: Annotated[UUID, Depends(current_user_id)],
    accounts: Annotated[AccountService, Depends(get_account_service)],
    requested: Annotated[Optional[UUID], Query(alias="id")] = None,
) -> UserResponse:
    return accounts.profile(owned_user_id(user_id, requested))


# --- SAVED GAME ---
@router.get("/api/game-state/game", response_model=SavedGameResponse, response_model_by_alias=True)
def get_saved_game(
    user_id: Annotated[UUID, Depends(current_user_id)],
    game_states: Annotated[GameStateService, Depends(get_game_state_service)],
    requested: Annotated[Optional[UUID], Query(alias="id")] = None,
) -> SavedGameResponse:
    return game_states.get_saved_state(owned_user_id(user_id, requested))


@router.post("/api/game-state/game", response_model=MessageResponse)
def save_game(
    request: SaveGameRequest,
    user_id: Annotated[UUID, Depends(current_user_id)],
    game_states: Annotated[GameStateService, Depends(get_game_state_service)],
) -> MessageResponse:
    owned_user_id(user_id, request.user_id)
    game_states.save_state(request)
    return MessageResponse(message="Game state saved successfully")


# --- CATALOG ---
@router.get("/api/openings", response_model=OpeningsPage, response_model_by_alias=True)
def list_openings(
    catalog: Annotated[CatalogService, Depends(get_catalog_service)], page: int = 1, limit: int = 10
) -> OpeningsPage:
    return catalog.list_openings(page=page, limit=limit)


@router.get("/api/openings/{opening_id}", response_model=OpeningResponse, response_model_by_alias=True)
def get_opening(
    opening_id: UUID, catalog: Annotated[CatalogService, Depends(get_catalog_service)]
) -> OpeningResponse:
    return catalog.get_opening(opening_id)


@router.get("/api/puzzles", response_model=Puzzle, response_model_by_alias=True)
def get_puzzle(catalog: Annotated[CatalogService, Depends(get_catalog_service)]) -> Puzzle:
    return catalog.get_puzzle()


# --- LANGUAGE MODEL ---
@router.post("/api/openai", response_model=PromptResponse)
async def complete_prompt(
    request: PromptRequest, model: Annotated[LanguageModel, Depends(get_language_model)]
) -> PromptResponse:
    return PromptResponse(response=await model.complete(request.prompt))


@router.post("/api/openai-stream", response_class=StreamingResponse)
async def stream_prompt(
    request: PromptRequest, model: Annotated[LanguageModel, Depends(get_language_model)]
) -> StreamingResponse:
    """Plain text, sent chunk by chunk as the model produces it."""
    chunks = await model.stream(request.prompt)
    return StreamingResponse(chunks, media_type="text/plain")


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
