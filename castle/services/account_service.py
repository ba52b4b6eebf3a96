"""Registration, login and bearer-token checks."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

from passlib.hash import bcrypt

from castle.api.models import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from castle.core.exceptions import AuthenticationError, DuplicateRecordError, NotFoundError
from castle.core.models import AuthTokenModel, UserModel
from castle.db.repository import UserRepository

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24


def as_utc(moment: datetime) -> datetime:
    """SQLite hands back naive datetimes; they were written as UTC."""
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class AccountService:
    def __init__(self, repository: UserRepository, token_ttl: timedelta = timedelta(hours=1)) -> None:
        self.repo = repository
        self.token_ttl = token_ttl

    def register(self, request: RegisterRequest) -> AuthResponse:
        """Create the account and log it in straight away."""
        if self.repo.get_user_by_email(request.email) is not None:
            raise DuplicateRecordError("User already exists")

        user = self.repo.create_user(request.email, bcrypt.hash(request.password))
        logger.info("Registered user %s", user.id)
        return AuthResponse(token=self._issue_token(user), user_id=user.id, message="Registration successful")

    def login(self, request: LoginRequest) -> AuthResponse:
        user = self.repo.get_user_by_email(request.email)
        if user is None or not self._verify(request.password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        return AuthResponse(token=self._issue_token(user), user_id=user.id, message="Login successful")

    def authenticate(self, token: str) -> UUID:
        """Resolve a bearer token to its user ID. Expired tokens are dropped on sight."""
        record = self.repo.get_token(token)
        if record is None:
            raise AuthenticationError("Invalid token")
        if as_utc(record.expires_at) <= datetime.now(timezone.utc):
            self.repo.delete_token(token)
            raise AuthenticationError("Token expired")
        return record.user_id

    def logout(self, token: str) -> None:
        self.repo.delete_token(token)

    def profile(self, user_id: UUID) -> UserResponse:
        user = self.repo.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return UserResponse(username=user.email, id=user.id)

    # -- Internal helpers --
    def _issue_token(self, user: UserModel) -> str:
        token = secrets.token_urlsafe(TOKEN_BYTES)
        expires_at = datetime.now(timezone.utc) + self.token_ttl
        self.repo.add_token(AuthTokenModel(token=token, user_id=user.id, expires_at=expires_at))
        return token

    def _verify(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.verify(password, password_hash)
        except ValueError:
            logger.warning("Stored password hash could not be read")
            return False
