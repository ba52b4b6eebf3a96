"""
The game session: the one mutable aggregate a coordinator owns for the lifetime of a browser tab.
"""

from dataclasses import dataclass, field
from typing import Optional, Self

from castle.chess.lesson import LessonScript
from castle.chess.rules import MoveApplication, Position, RulesOracle
from castle.core.models import SavedGameModel
from castle.core.shared_types import (
    DEFAULT_OPPONENT,
    Color,
    Difficulty,
    Phase,
    Rejection,
    Termination,
)


@dataclass(frozen=True)
class SessionConfig:
    """What the player picks before pressing Start."""

    start_fen: Optional[str] = None
    human_color: Color = Color.WHITE
    opponent: str = DEFAULT_OPPONENT
    difficulty: Difficulty = Difficulty.EASY
    phase: Phase = Phase.FREE_PLAY
    commentary: bool = False  # coach remarks after each human move (puzzles)


@dataclass
class GameSession:
    position: Position
    human_color: Color
    opponent: str = DEFAULT_OPPONENT
    difficulty: Difficulty = Difficulty.EASY
    phase: Phase = Phase.FREE_PLAY
    history: list[str] = field(default_factory=list)  # SAN, one entry per ply
    descriptions: list[str] = field(default_factory=list)  # "White moved from e2 to e4"
    started: bool = False
    termination: Optional[Termination] = None
    generation: int = 0
    commentary: bool = False

    @classmethod
    def new(cls, position: Position, config: SessionConfig, generation: int) -> Self:
        return cls(
            position=position,
            human_color=config.human_color,
            opponent=config.opponent,
            difficulty=config.difficulty,
            phase=config.phase,
            generation=generation,
            commentary=config.commentary,
        )

    @property
    def ply(self) -> int:
        return len(self.history)

    @property
    def move_number(self) -> int:
        return self.ply // 2 + 1

    @property
    def side_to_move(self) -> Color:
        return self.position.side_to_move

    @property
    def opponent_color(self) -> Color:
        return self.human_color.opposite

    @property
    def is_terminal(self) -> bool:
        return self.termination is not None

    @property
    def is_live(self) -> bool:
        return self.started and not self.is_terminal

    @property
    def is_human_turn(self) -> bool:
        return self.side_to_move == self.human_color

    @property
    def winner(self) -> Optional[Color]:
        """Only a checkmate or a resignation has a winner; the side to move is the one that lost."""
        if self.termination == Termination.CHECKMATE:
            return self.side_to_move.opposite
        if self.termination == Termination.RESIGNED:
            return self.opponent_color
        return None

    def record(self, application: MoveApplication) -> None:
        """The single transition that advances the game by one ply."""
        self.position = application.position
        self.history.append(application.san)
        self.descriptions.append(application.describe())
        self.termination = application.termination

    def to_checkpoint(self, oracle: RulesOracle) -> SavedGameModel:
        return SavedGameModel(
            fen=self.position.fen,
            pgn=oracle.to_pgn(self.position),
            move_history=list(self.history),
            user_color=self.human_color,
            opponent=self.opponent,
            mode=self.difficulty,
            game_started=self.started,
            phase=self.phase,
        )


@dataclass(frozen=True)
class QuickSaveSnapshot:
    position: Position
    ply: int


@dataclass(frozen=True)
class MoveOutcome:
    """What the presentation layer gets back for a move attempt."""

    accepted: bool
    application: Optional[MoveApplication] = None
    rejection: Optional[Rejection] = None

    @property
    def san(self) -> Optional[str]:
        return self.application.san if self.application else None

    @classmethod
    def accept(cls, application: MoveApplication) -> Self:
        return cls(accepted=True, application=application)

    @classmethod
    def reject(cls, reason: Rejection) -> Self:
        return cls(accepted=False, rejection=reason)


@dataclass
class LessonProgress:
    script: LessonScript
    step: int = 0
    suggestions: list[str] = field(default_factory=list)
    explained_step: Optional[int] = None
    completed: bool = False

    @property
    def expected(self) -> Optional[str]:
        return self.script.expected(self.step)
