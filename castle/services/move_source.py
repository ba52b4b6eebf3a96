"""
Move sources: whoever answers "what does the opponent play here?".

The reply of a move source is never trusted. The only check done on it is membership of the legal move list,
and `RandomFallbackMoveSource` turns any source into one that always answers with a legal move.
"""

import logging
import random
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from castle.chess.rules import Position, normalize_san
from castle.core.exceptions import GameStateError
from castle.core.shared_types import DEFAULT_OPPONENT, Color, Difficulty
from castle.services.language_model import LanguageModel

logger = logging.getLogger(__name__)

DIFFICULTY_INSTRUCTIONS: dict[Difficulty, str] = {
    Difficulty.EASY: "choose any legal move from the list, favoring less optimal moves",
    Difficulty.MEDIUM: "choose a moderately strong move from the list",
    Difficulty.HARD: "choose the strongest move from the list",
}

PERSONA_STYLES: dict[str, str] = {
    "Magnus Carlsen": "Choose moves that demonstrate positional understanding and technical precision.",
    "Garry Kasparov": "Prefer aggressive and tactical moves that create attacking opportunities.",
    "Bobby Fischer": "Focus on clear, principled moves with a mix of tactical brilliance.",
    "Samay Raina": "Choose entertaining moves that maintain a balance between fun and competitive play.",
}

LEADING_MOVE_NUMBER = re.compile(r"^\d+\.+\s*")
QUOTES = "\"'`*"


@dataclass(frozen=True)
class Directive:
    """Who the move source plays as, and how strong/in which style."""

    color: Color
    opponent: str = DEFAULT_OPPONENT
    difficulty: Difficulty = Difficulty.EASY

    @property
    def is_persona(self) -> bool:
        return self.opponent != DEFAULT_OPPONENT

    @property
    def effective_difficulty(self) -> Difficulty:
        """Persona opponents always play at full strength."""
        return Difficulty.HARD if self.is_persona else self.difficulty


class MoveSource(Protocol):
    async def suggest_move(
        self, position: Position, legal_moves: list[str], directive: Directive
    ) -> Optional[str]:
        """One move in SAN, or None. May raise on network failures."""
        ...


def build_prompt(position: Position, legal_moves: list[str], directive: Directive) -> str:
    """Translate position, legal moves and directive into the single request sent to the model."""
    prompt = (
        f"You are a chess AI assistant. The current game state in FEN notation is: {position.fen}. \n"
        f"The available legal moves in this position are: {', '.join(legal_moves)}. "
    )
    side = str(directive.color)
    if not directive.is_persona:
        difficulty = directive.effective_difficulty
        prompt += (
            f"The difficulty level is set to {difficulty}. Please provide the next best move for {side} "
            f'from the list of available moves in standard algebraic notation (e.g., "e4", "Nf3"). '
            f"For {difficulty} difficulty, {DIFFICULTY_INSTRUCTIONS[difficulty]}. "
        )
    else:
        style = PERSONA_STYLES.get(directive.opponent, "")
        prompt += (
            f"You are playing as {directive.opponent}. Please provide the next best move for {side} "
            f'from the list of available moves in standard algebraic notation (e.g., "e4", "Nf3"), '
            f"mimicking {directive.opponent}'s playing style and typical strategies. \n{style}\n"
        )
    return prompt + "Return ONLY the move in standard algebraic notation, without any additional text."


def parse_reply(reply: Optional[str]) -> Optional[str]:
    """
    Pull a single move token out of the model's text.
    ----

    '"Nf3"' --> 'Nf3'
    '12... Qxd5.' --> 'Qxd5'
    '' --> None
    """
    if not reply:
        return None
    text = LEADING_MOVE_NUMBER.sub("", reply.strip().strip(QUOTES).strip())
    tokens = text.split()
    if not tokens:
        return None
    token = tokens[0].strip(QUOTES).rstrip(".,;:")
    return token or None


def match_legal_move(candidate: Optional[str], legal_moves: list[str]) -> Optional[str]:
    """The legal move (as the oracle spells it) the candidate denotes, if any."""
    if not candidate:
        return None
    by_plain_san = {normalize_san(move): move for move in legal_moves}
    return by_plain_san.get(normalize_san(candidate))


class LanguageModelMoveSource:
    """Ask the hosted model once. No retries, the caller decides what to do with a bad answer."""

    def __init__(self, model: LanguageModel) -> None:
        self.model = model

    async def suggest_move(
        self, position: Position, legal_moves: list[str], directive: Directive
    ) -> Optional[str]:
        reply = await self.model.complete(build_prompt(position, legal_moves, directive))
        return parse_reply(reply)


class RandomFallbackMoveSource:
    """
    Decorator around any move source: the answer is always one of the legal moves.

    Invalid, empty or failed replies are replaced by a uniformly random legal move, so a session never stalls
    on an unreliable suggester.
    """

    def __init__(self, source: MoveSource, rng: Optional[random.Random] = None) -> None:
        self.source = source
        self.rng = rng or random.Random()
        self.fallbacks = 0

    async def suggest_move(
        self, position: Position, legal_moves: list[str], directive: Directive
    ) -> str:
        if not legal_moves:
            raise GameStateError(f"No legal moves to choose from in {position.fen!r}.")

        try:
            reply = await self.source.suggest_move(position, legal_moves, directive)
        except Exception as exc:  # any failure of the suggester is recovered below
            logger.warning("Move source failed, falling back to a random move: %r", exc)
            return self._fallback(legal_moves)

        move = match_legal_move(reply, legal_moves)
        if move is None:
            logger.warning("Invalid move received from move source: %r", reply)
            return self._fallback(legal_moves)
        return move

    def _fallback(self, legal_moves: list[str]) -> str:
        self.fallbacks += 1
        move = self.rng.choice(legal_moves)
        logger.info("Falling back to: %s", move)
        return move
