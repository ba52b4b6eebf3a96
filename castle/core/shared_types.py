"""
Type definitions used across layers
"""

from enum import StrEnum


class Color(StrEnum):
    WHITE = "white"
    BLACK = "black"

    @property
    def opposite(self) -> "Color":
        return Color.BLACK if self == Color.WHITE else Color.WHITE


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Phase(StrEnum):
    OPENING_LESSON = "opening-lesson"
    PRACTICE = "practice"
    FREE_PLAY = "free-play"


class SessionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AWAITING_HUMAN = "awaiting-human"
    AWAITING_OPPONENT = "awaiting-opponent"
    TERMINAL = "terminal"


class Termination(StrEnum):
    """Why a game stopped. All but RESIGNED are reported by the rules oracle."""

    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    INSUFFICIENT_MATERIAL = "insufficient material"
    THREEFOLD_REPETITION = "threefold repetition"
    FIFTY_MOVES = "fifty-move rule"
    DRAW = "draw"
    RESIGNED = "resigned"


class Rejection(StrEnum):
    """Reasons a candidate move is turned down without touching the session."""

    NOT_STARTED = "game not started"
    GAME_OVER = "game over"
    NOT_YOUR_TURN = "not your turn"
    OPPONENT_THINKING = "opponent is thinking"
    ILLEGAL_MOVE = "invalid move"
    LESSON_MISMATCH = "incorrect move"
    LESSON_COMPLETE = "lesson complete"


class Variant(StrEnum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


DEFAULT_OPPONENT = "Castle.ai"
