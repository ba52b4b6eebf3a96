"""
Boundary layer data model(s).

These objects can be used to communicate with the Services.
Hence, both the API layer (higher) and domain/db layers (lower) will use model(s) defined here to send to/receive from the Services
(Decouples the data model specific to the DB layer, API layer, or domain layer from the information needed to send across boundaries)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Self
from uuid import UUID

from castle.core.shared_types import DEFAULT_OPPONENT, Color, Difficulty, Phase

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


@dataclass
class SavedGameModel:
    """
    Checkpoint of one game session, stored embedded in the user record.

    Keys of the JSON form use the camelCase names the browser client already writes.
    """

    fen: str = STARTING_FEN
    pgn: str = ""
    move_history: list[str] = field(default_factory=list)
    user_color: Color = Color.WHITE
    opponent: str = DEFAULT_OPPONENT
    mode: Difficulty = Difficulty.EASY
    game_started: bool = False
    phase: Phase = Phase.FREE_PLAY

    def to_json(self) -> dict[str, Any]:
        return {
            "fen": self.fen,
            "pgn": self.pgn,
            "moveHistory": list(self.move_history),
            "userColor": str(self.user_color),
            "opponent": self.opponent,
            "mode": str(self.mode),
            "gameStarted": self.game_started,
            "phase": str(self.phase),
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Self:
        """Tolerant read: older checkpoints may miss pgn/phase."""
        return cls(
            fen=data.get("fen") or STARTING_FEN,
            pgn=data.get("pgn") or "",
            move_history=list(data.get("moveHistory") or []),
            user_color=Color(data.get("userColor", Color.WHITE)),
            opponent=data.get("opponent") or DEFAULT_OPPONENT,
            mode=Difficulty(data.get("mode", Difficulty.EASY)),
            game_started=bool(data.get("gameStarted", False)),
            phase=Phase(data.get("phase", Phase.FREE_PLAY)),
        )


@dataclass
class UserModel:
    """User record as seen by the services (the password hash never leaves the account service)."""

    id: UUID
    email: str
    password_hash: str
    saved_game: Optional[dict[str, Any]] = None
    last_game_timestamp: Optional[datetime] = None


@dataclass
class OpeningModel:
    id: UUID
    name: str
    fen: str
    moves: str


@dataclass
class PuzzleModel:
    id: UUID
    fen: str
    moves: list[str]
    rating: Optional[int] = None
    themes: list[str] = field(default_factory=list)


@dataclass
class UserProfile:
    """What a client may learn about a user."""

    id: UUID
    display_name: str


@dataclass
class AuthTokenModel:
    token: str
    user_id: UUID
    expires_at: datetime
