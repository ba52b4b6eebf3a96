"""
Persistence as seen from a game session: load/save the checkpoint of one user, read the profile, fetch lesson content.

Two implementations of the same contract:
* `HttpPersistenceClient` talks to the API over HTTP with a bearer token (what a remote client does).
* `LocalPersistence` calls the services in-process (used by the server itself and by tests).
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Protocol, Self
from uuid import UUID

import httpx

from castle.api.models import SavedGameState, SaveGameRequest
from castle.core.config import Settings
from castle.core.exceptions import AuthenticationError, NotFoundError, PersistenceError
from castle.core.models import OpeningModel, SavedGameModel, UserProfile
from castle.services.account_service import AccountService
from castle.services.catalog_service import CatalogService
from castle.services.game_state_service import GameStateService

logger = logging.getLogger(__name__)


class GameStateStore(Protocol):
    async def load(self, user_id: UUID) -> Optional[SavedGameModel]:
        """Last checkpoint of the user, None if nothing saved."""
        ...

    async def save(self, user_id: UUID, state: SavedGameModel) -> None:
        """Upsert the checkpoint. Last write wins."""
        ...

    async def get_profile(self, user_id: UUID) -> UserProfile: ...


class OpeningSource(Protocol):
    async def get_opening(self, opening_id: UUID) -> OpeningModel: ...


class HttpPersistenceClient:
    """Client for the persistence endpoints. Every call carries the bearer token."""

    def __init__(self, client: httpx.AsyncClient, token: Optional[str]) -> None:
        self.client = client
        self.token = token

    @classmethod
    def from_settings(cls, settings: Settings, token: Optional[str]) -> Self:
        """Client for the API at `CASTLE_API_URL`. Call `aclose` when done."""
        return cls(httpx.AsyncClient(base_url=settings.api_url), token)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def load(self, user_id: UUID) -> Optional[SavedGameModel]:
        data = await self._request("GET", "/api/game-state/game", params={"id": str(user_id)})
        saved = data.get("savedGameState")
        if not saved:
            return None
        with _malformed("saved game"):
            return SavedGameModel.from_json(saved)

    async def save(self, user_id: UUID, state: SavedGameModel) -> None:
        await self._request(
            "POST", "/api/game-state/game", json={"userId": str(user_id), "gameState": state.to_json()}
        )

    async def get_profile(self, user_id: UUID) -> UserProfile:
        data = await self._request("GET", "/api/user", params={"id": str(user_id)})
        with _malformed("user"):
            return UserProfile(id=UUID(data["_id"]), display_name=data["username"])

    async def get_opening(self, opening_id: UUID) -> OpeningModel:
        data = await self._request("GET", f"/api/openings/{opening_id}")
        with _malformed("opening"):
            opening = data["opening"]
            return OpeningModel(
                id=UUID(opening["_id"]), name=opening["name"], fen=opening["fen"], moves=opening["moves"]
            )

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise PersistenceError(f"{method} {url} failed: {exc}") from exc

        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise AuthenticationError("Authentication failed")
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError(_message(response))
        if response.is_error:
            raise PersistenceError(f"{method} {url} returned {response.status_code}: {_message(response)}")
        try:
            data = response.json()
        except ValueError as exc:
            raise PersistenceError(f"{method} {url} returned a body that is not JSON") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"{method} {url} returned {type(data).__name__} instead of an object")
        return data


class LocalPersistence:
    """Same contract, served directly by the services (no network hop)."""

    def __init__(
        self, game_states: GameStateService, accounts: AccountService, catalog: CatalogService
    ) -> None:
        self.game_states = game_states
        self.accounts = accounts
        self.catalog = catalog

    async def load(self, user_id: UUID) -> Optional[SavedGameModel]:
        response = self.game_states.get_saved_state(user_id)
        if response.saved_game_state is None:
            return None
        return SavedGameModel.from_json(response.saved_game_state.model_dump(mode="json", by_alias=True))

    async def save(self, user_id: UUID, state: SavedGameModel) -> None:
        request = SaveGameRequest(user_id=user_id, game_state=SavedGameState.model_validate(state.to_json()))
        self.game_states.save_state(request)

    async def get_profile(self, user_id: UUID) -> UserProfile:
        profile = self.accounts.profile(user_id)
        return UserProfile(id=profile.id, display_name=profile.username)

    async def get_opening(self, opening_id: UUID) -> OpeningModel:
        opening = self.catalog.get_opening(opening_id).opening
        return OpeningModel(id=opening.id, name=opening.name, fen=opening.fen, moves=opening.moves)


@contextmanager
def _malformed(what: str) -> Iterator[None]:
    """Turn a reply with missing or mistyped fields into a PersistenceError."""
    try:
        yield
    except (KeyError, TypeError, ValueError) as exc:
        raise PersistenceError(f"Malformed {what} in response: {exc!r}") from exc


def _message(response: httpx.Response) -> str:
    try:
        return response.json().get("message", response.text)
    except (AttributeError, ValueError):
        return response.text
