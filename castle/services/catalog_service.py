"""Read-only lesson content: openings and puzzles."""

import math
from uuid import UUID

from castle.api.models import Opening, OpeningResponse, OpeningsPage, Puzzle
from castle.core.exceptions import InvalidRequestError, NotFoundError
from castle.core.models import OpeningModel
from castle.db.repository import OpeningRepository, PuzzleRepository


class CatalogService:
    def __init__(self, openings: OpeningRepository, puzzles: PuzzleRepository) -> None:
        self.openings = openings
        self.puzzles = puzzles

    def list_openings(self, page: int = 1, limit: int = 10) -> OpeningsPage:
        if page < 1 or limit < 1:
            raise InvalidRequestError("Invalid page or limit parameter")

        skip = (page - 1) * limit
        openings = self.openings.list_openings(skip=skip, limit=limit)
        total = self.openings.count_openings()
        return OpeningsPage(
            openings=[self._to_opening(opening) for opening in openings],
            current_page=page,
            total_pages=math.ceil(total / limit),
            openings_per_page=limit,
        )

    def get_opening(self, opening_id: UUID) -> OpeningResponse:
        opening = self.openings.get_opening(opening_id)
        if opening is None:
            raise NotFoundError("Opening not found")
        return OpeningResponse(opening=self._to_opening(opening))

    def get_puzzle(self) -> Puzzle:
        puzzle = self.puzzles.first_puzzle()
        if puzzle is None:
            raise NotFoundError("No puzzle found in the collection")
        return Puzzle(id=puzzle.id, fen=puzzle.fen, moves=puzzle.moves, rating=puzzle.rating, themes=puzzle.themes)

    def _to_opening(self, opening: OpeningModel) -> Opening:
        return Opening(id=opening.id, name=opening.name, fen=opening.fen, moves=opening.moves)
