"""Orchestration of saved-game requests between the API router and the user repository."""

from datetime import datetime, timezone
from uuid import UUID

from castle.api.models import SavedGameResponse, SavedGameState, SaveGameRequest
from castle.core.exceptions import NotFoundError
from castle.db.repository import UserRepository


class GameStateService:
    """One saved game per user, overwritten on every save (last write wins, no version check)."""

    def __init__(self, repository: UserRepository) -> None:
        self.repo = repository

    def get_saved_state(self, user_id: UUID) -> SavedGameResponse:
        """Saved game of the user, or an empty response when nothing has been saved yet."""
        user = self.repo.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")

        saved = SavedGameState.model_validate(user.saved_game) if user.saved_game else None
        return SavedGameResponse(saved_game_state=saved, last_game_timestamp=user.last_game_timestamp)

    def save_state(self, request: SaveGameRequest) -> None:
        state = request.game_state.model_dump(mode="json", by_alias=True)
        stored = self.repo.save_game_state(request.user_id, state, datetime.now(timezone.utc))
        if stored is None:
            raise NotFoundError("User not found")
