"""
Opening lessons: the fixed move sequence a student replays, one ply at a time.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Self

from castle.chess.rules import Position, RulesOracle
from castle.core.exceptions import LessonScriptError
from castle.core.models import OpeningModel
from castle.core.shared_types import Color

MOVE_NUMBER = re.compile(r"\d+\.\s*")


def parse_opening_moves(moves: Optional[str]) -> list[str]:
    """
    Opening records store moves as a game-record fragment
    ----

    "1. e4 e5 2. Nf3 Nc6" --> ["e4", "e5", "Nf3", "Nc6"]
    """
    if not moves:
        return []
    return [
        token
        for chunk in MOVE_NUMBER.split(moves)
        for token in chunk.split()
        if token
    ]


@dataclass
class LessonScript:
    """Ordered expected moves plus the explanation shown for each one."""

    name: str
    start_fen: str
    moves: list[str]
    explanations: dict[int, str] = field(default_factory=dict)

    @classmethod
    def from_opening(cls, opening: OpeningModel) -> Self:
        return cls(name=opening.name, start_fen=opening.fen, moves=parse_opening_moves(opening.moves))

    def __len__(self) -> int:
        return len(self.moves)

    def expected(self, step: int) -> Optional[str]:
        """Scripted move at this step, None once the script is exhausted."""
        if 0 <= step < len(self.moves):
            return self.moves[step]
        return None

    def explanation(self, step: int) -> Optional[str]:
        return self.explanations.get(step)

    def student_color(self, oracle: RulesOracle) -> Color:
        """
        The student plays the side that makes the first scripted move.

        Checked by trying the first move from the start position: if it is not playable there, the script starts with black's reply.
        """
        start = oracle.start(self.start_fen)
        first = self.expected(0)
        if first is None or oracle.apply_move(start, first) is not None:
            return start.side_to_move
        return start.side_to_move.opposite

    def validate(self, oracle: RulesOracle) -> None:
        """Every scripted move must be playable in order; raise otherwise."""
        position: Position = oracle.start(self.start_fen)
        for step, move in enumerate(self.moves):
            applied = oracle.apply_move(position, move)
            if applied is None:
                raise LessonScriptError(
                    f"Move {step + 1} ({move!r}) of {self.name!r} is not legal in its position."
                )
            position = applied.position
