"""
Coaching commentary for lessons and puzzles.

Every remark is one prompt to the language model. When the model fails, a canned line is used instead: commentary is never worth blocking the board for.
"""

import logging

from castle.core.exceptions import LanguageModelError
from castle.services.language_model import LanguageModel

logger = logging.getLogger(__name__)

FALLBACK_ADVANTAGE = "This opening helps control the center and develop pieces quickly."
FALLBACK_HINT = "Look for the strongest piece and its best possible move."
FALLBACK_FEEDBACK = "Nice move! Let me think about my response..."


class Tutor:
    def __init__(self, model: LanguageModel) -> None:
        self.model = model

    async def opening_advantage(self, opening_name: str) -> str:
        prompt = (
            f"You are a chess instructor teaching beginners. In 10-15 words, explain the main advantage of the "
            f"{opening_name} opening. Keep it simple and avoid technical terms."
        )
        return await self._ask(prompt, FALLBACK_ADVANTAGE)

    async def explain_move(self, opening_name: str, moves_so_far: list[str], move: str) -> str:
        prompt = (
            f"You are a chess instructor teaching beginners. The following moves have been played in the "
            f"{opening_name}: {', '.join(moves_so_far)}. \n"
            f"In 10-15 words, explain why the move {move} is played next. Include a brief strategic reason and "
            f"mention a famous game if relevant. Keep it simple."
        )
        return await self._ask(prompt, f"{move} helps develop pieces and control important squares.")

    async def move_feedback(self, move: str) -> str:
        prompt = (
            f"You are a chess coach. The player just made the move {move}. \n"
            f"Give a very brief (maximum 10 words) encouraging response about their move. \n"
            f"Keep it natural and varied. Don't be repetitive."
        )
        return await self._ask(prompt, FALLBACK_FEEDBACK)

    async def hint(self, fen: str) -> str:
        prompt = (
            f"You are a chess coach. Given the current position in FEN notation: {fen},\n"
            f"provide a subtle hint about the best move without directly revealing it.\n"
            f"Consider the tactical and strategic elements but don't give away the move.\n"
            f"Keep it under 15 words and make it engaging."
        )
        return await self._ask(prompt, FALLBACK_HINT)

    async def _ask(self, prompt: str, fallback: str) -> str:
        try:
            reply = await self.model.complete(prompt)
        except LanguageModelError as exc:
            logger.warning("Tutor falls back to canned text: %s", exc)
            return fallback
        return reply or fallback
