"""Password hashing, access tokens and account operations.

Tokens are HS256 JWTs. The ``get_current_user_id`` dependency is the only
thing the rest of the API needs: it turns a bearer token into a user id or
answers 401.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.cards.results import ErrorKind, Result
from backend.cards.scoped import is_valid_user_id
from backend.config import Settings, settings, utcnow
from backend.database import get_session
from backend.models.user import User

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"

_bearer = HTTPBearer(auto_error=False)


# --- Passwords ---


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


# --- Tokens ---


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthSession:
    """What a successful register or login hands back to the client."""

    user_id: uuid.UUID
    email: str
    token: str
    expires_at: datetime


def create_access_token(user_id: uuid.UUID, email: str, config: Settings = settings) -> AccessToken:
    """Issue a signed token for ``user_id`` valid for ``jwt_expiration_minutes``."""
    expires_at = utcnow() + timedelta(minutes=config.jwt_expiration_minutes)
    claims = {
        "sub": str(user_id),
        "email": email,
        "jti": str(uuid.uuid4()),
        "iss": config.jwt_issuer,
        "aud": config.jwt_audience,
        "exp": expires_at,
    }
    token = jwt.encode(claims, config.jwt_secret_key, algorithm="HS256")
    return AccessToken(token=token, expires_at=expires_at)


def decode_access_token(token: str, config: Settings = settings) -> uuid.UUID | None:
    """Return the user id a valid token was issued for, or None."""
    try:
        claims = jwt.decode(
            token,
            config.jwt_secret_key,
            algorithms=["HS256"],
            audience=config.jwt_audience,
            issuer=config.jwt_issuer,
        )
        return uuid.UUID(claims["sub"])
    except (jwt.PyJWTError, KeyError, ValueError) as e:
        logger.debug("Rejected access token: %s", e)
        return None


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_session),
) -> uuid.UUID:
    """FastAPI dependency: the authenticated caller's id.

    A valid token whose account has since been deleted is rejected too.
    """
    user_id = decode_access_token(credentials.credentials) if credentials else None
    if user_id is not None and is_valid_user_id(user_id):
        exists = await db.scalar(select(User.id).where(User.id == user_id))
        if exists is None:
            logger.warning("Rejected token for missing user %s", user_id)
            user_id = None
    if user_id is None or not is_valid_user_id(user_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


# --- Accounts ---


class AuthService:
    def __init__(self, db: AsyncSession, config: Settings = settings) -> None:
        self.db = db
        self.config = config

    def _session_for(self, user: User) -> AuthSession:
        access = create_access_token(user.id, user.email, self.config)
        return AuthSession(
            user_id=user.id, email=user.email, token=access.token, expires_at=access.expires_at
        )

    async def _find_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def register(self, email: str, password: str) -> Result[AuthSession]:
        """Create an account and sign it in. Password rules are enforced by the API schema."""
        email = normalize_email(email)
        if await self._find_by_email(email) is not None:
            logger.warning("Registration attempt with existing email: %s", email)
            return Result.failure(ErrorKind.VALIDATION, "Email is already registered")

        user = User(email=email, password_hash=hash_password(password))
        try:
            self.db.add(user)
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            await self.db.rollback()
            return Result.failure(ErrorKind.VALIDATION, "Email is already registered")
        except SQLAlchemyError:
            logger.error("User registration failed for email %s", email, exc_info=True)
            await self.db.rollback()
            return Result.failure(ErrorKind.PERSISTENCE, "An error occurred during registration")

        logger.info("User registered: %s (%s)", user.id, email)
        return Result.success(self._session_for(user))

    async def login(self, email: str, password: str) -> Result[AuthSession]:
        user = await self._find_by_email(normalize_email(email))
        if user is None:
            logger.warning("Login attempt with unknown email: %s", email)
            return Result.failure(ErrorKind.UNAUTHORIZED, INVALID_CREDENTIALS_MESSAGE)
        if not verify_password(password, user.password_hash):
            logger.warning("Login attempt with invalid password for user %s", user.id)
            return Result.failure(ErrorKind.UNAUTHORIZED, INVALID_CREDENTIALS_MESSAGE)

        logger.info("User logged in: %s", user.id)
        return Result.success(self._session_for(user))

    async def logout(self, user_id: uuid.UUID) -> Result[bool]:
        # Tokens are stateless; logout only leaves an audit trail
        logger.info("User logged out: %s", user_id)
        return Result.success(True)

    async def delete_account(self, user_id: uuid.UUID, password: str) -> Result[bool]:
        """Delete the caller and, through foreign-key cascades, everything they own."""
        if not is_valid_user_id(user_id):
            return Result.failure(ErrorKind.INVALID_USER, "Invalid user ID")

        user = await self.db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")
        if not verify_password(password, user.password_hash):
            logger.warning("Account deletion with invalid password for user %s", user_id)
            return Result.failure(ErrorKind.UNAUTHORIZED, "Invalid password")

        try:
            await self.db.execute(delete(User).where(User.id == user_id))
            await self.db.commit()
        except SQLAlchemyError:
            logger.error("Failed to delete account %s", user_id, exc_info=True)
            await self.db.rollback()
            return Result.failure(
                ErrorKind.PERSISTENCE, "An error occurred while deleting the account"
            )

        logger.info("Deleted account %s", user_id)
        return Result.success(True)
