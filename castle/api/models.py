"""Requests and Response models"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from castle.core.exceptions import InvalidRequestError
from castle.core.models import STARTING_FEN
from castle.core.shared_types import DEFAULT_OPPONENT, Color, Difficulty, Phase


class CamelModel(BaseModel):
    """The browser client speaks camelCase; accept both spellings on the way in."""

    model_config = ConfigDict(populate_by_name=True)


# --- REQUEST MODELS ---
class CredentialsRequest(BaseModel):
    model_config = ConfigDict(validate_default=True)

    email: str = ""
    password: str = ""

    @field_validator("email", "password")
    @classmethod
    def validate_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise InvalidRequestError("Please provide all required fields")
        return value


class RegisterRequest(CredentialsRequest):
    pass


class LoginRequest(CredentialsRequest):
    pass


class SavedGameState(CamelModel):
    fen: str = STARTING_FEN
    pgn: str = ""
    move_history: list[str] = Field(default_factory=list, alias="moveHistory")
    user_color: Color = Field(default=Color.WHITE, alias="userColor")
    opponent: str = DEFAULT_OPPONENT
    mode: Difficulty = Difficulty.EASY
    game_started: bool = Field(default=False, alias="gameStarted")
    phase: Phase = Phase.FREE_PLAY

    @field_validator("fen")
    @classmethod
    def validate_fen(cls, value: str) -> str:
        parts = value.strip().split(" ")
        if len(parts) != 6:
            raise InvalidRequestError("FEN string must contain 6 space-separated parts.")
        return value


class SaveGameRequest(CamelModel):
    user_id: UUID = Field(alias="userId")
    game_state: SavedGameState = Field(alias="gameState")


class PromptRequest(BaseModel):
    prompt: str

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, value: str) -> str:
        if not value.strip():
            raise InvalidRequestError("Prompt must not be empty.")
        return value


# --- RESPONSE MODELS ---
class MessageResponse(BaseModel):
    message: str


class AuthResponse(CamelModel):
    token: str
    user_id: UUID = Field(alias="userId")
    message: str


class UserResponse(CamelModel):
    username: str
    id: UUID = Field(alias="_id")


class SavedGameResponse(CamelModel):
    saved_game_state: Optional[SavedGameState] = Field(alias="savedGameState")
    last_game_timestamp: Optional[datetime] = Field(alias="lastGameTimestamp")


class Opening(CamelModel):
    id: UUID = Field(alias="_id")
    name: str
    fen: str
    moves: str


class OpeningResponse(BaseModel):
    opening: Opening


class OpeningsPage(CamelModel):
    openings: list[Opening]
    current_page: int = Field(alias="currentPage")
    total_pages: int = Field(alias="totalPages")
    openings_per_page: int = Field(alias="openingsPerPage")


class Puzzle(CamelModel):
    id: UUID = Field(alias="_id")
    fen: str
    moves: list[str]
    rating: Optional[int] = None
    themes: list[str] = Field(default_factory=list)


class PromptResponse(BaseModel):
    response: str
