from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_
from typing import Optional
from werkzeug.security import check_password_hash, generate_password_hash
import jwt
import logging

from inventory_api.config import get_settings
from inventory_api.models.user import User
from inventory_api.schemas.auth import RegisterRequest, LoginRequest

logger = logging.getLogger(__name__)

settings = get_settings()


class UserAlreadyExistsError(Exception):
    """Exception raised when the username or email is already registered."""
    pass


class InvalidCredentialsError(Exception):
    """Exception raised for an unknown email or a wrong password."""
    pass


class InvalidTokenError(Exception):
    """Exception raised when a bearer token is malformed, forged or expired."""
    pass


def create_access_token(user: User) -> str:
    """Issue a signed token carrying the user's id, username and email."""
    now = datetime.now(timezone.utc)
    payload = {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify a token and return its claims.

    Raises:
        InvalidTokenError: If the signature, expiry or claims are invalid
    """
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "id"]},
        )
    except jwt.PyJWTError as e:
        raise InvalidTokenError(str(e))
    return claims


class AuthService:
    """Registers users and verifies their credentials."""

    def __init__(self, db: Session):
        self.db = db

    def register(self, data: RegisterRequest) -> tuple[User, str]:
        """
        Create a user account and issue a token for it.

        Raises:
            UserAlreadyExistsError: If the username or email is taken
        """
        existing = (
            self.db.query(User)
            .filter(or_(User.email == data.email, User.username == data.username))
            .first()
        )
        if existing:
            raise UserAlreadyExistsError("User with this email or username already exists")

        user = User(
            username=data.username,
            email=data.email,
            password_hash=generate_password_hash(data.password),
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise UserAlreadyExistsError("User with this email or username already exists")

        self.db.refresh(user)
        logger.info(f"User #{user.id} '{user.username}' registered")
        return user, create_access_token(user)

    def login(self, data: LoginRequest) -> tuple[User, str]:
        """
        Verify email and password and issue a token.

        Unknown emails and wrong passwords fail identically.

        Raises:
            InvalidCredentialsError: If the credentials don't match a user
        """
        user = self.db.query(User).filter(User.email == data.email).first()
        if not user or not check_password_hash(user.password_hash, data.password):
            logger.warning("Failed login attempt")
            raise InvalidCredentialsError("Invalid email or password")

        return user, create_access_token(user)

    def get_user(self, user_id: int) -> Optional[User]:
        """Get a user by ID, or None if the account is gone."""
        return self.db.query(User).filter(User.id == user_id).first()
