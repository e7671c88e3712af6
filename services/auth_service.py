"""
Auth Service - password hashing, JWT tokens and user accounts.

Passwords are hashed with bcrypt directly and tokens are HS256 JWTs
(python-jose) carrying the user id in `sub`.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt
from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.schema import User
from services.exceptions import BusinessRuleError, ConflictError, ServiceError

logger = logging.getLogger(__name__)

# bcrypt input limit
MAX_PASSWORD_BYTES = 72


class AuthenticationError(ServiceError):
    """Credentials or token are not valid."""

    status_code = 401


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        # malformed stored hash
        return False


class AuthService:
    """
    User registration and login.

    Args:
        db_session: SQLAlchemy session
        secret_key: JWT signing key
        algorithm: JWT algorithm (HS256)
        expire_minutes: Token lifetime
        bcrypt_rounds: bcrypt cost factor
    """

    def __init__(self, db_session: Session, secret_key: str, algorithm: str = 'HS256',
                 expire_minutes: int = 1440, bcrypt_rounds: int = 12):
        self.session = db_session
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes
        self.bcrypt_rounds = bcrypt_rounds

    def create_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.utcnow() + (expires_delta or timedelta(minutes=self.expire_minutes))
        payload = {'sub': str(user.id), 'email': user.email, 'exp': expire}
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Decode and verify a token.

        Raises:
            AuthenticationError: If the token is malformed, expired or forged
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            raise AuthenticationError(f"Invalid token: {e}")
        if not payload.get('sub'):
            raise AuthenticationError('Invalid token: missing subject')
        return payload

    def user_from_token(self, token: str) -> User:
        payload = self.decode_token(token)
        try:
            user_id = int(payload['sub'])
        except (TypeError, ValueError):
            raise AuthenticationError('Invalid token subject')
        user = self.session.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active:
            raise AuthenticationError('User not found or inactive')
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        return self.session.query(User).filter(func.lower(User.email) == email.strip().lower()).first()

    def register(self, email: str, password: str, full_name: Optional[str] = None) -> User:
        if len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
            raise BusinessRuleError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        if self.find_by_email(email):
            raise ConflictError(f"A user with email {email} already exists")

        user = User(
            email=email.strip().lower(),
            full_name=full_name,
            hashed_password=hash_password(password, self.bcrypt_rounds),
            is_active=True
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"Registered user {user.id} ({user.email})")
        return user

    def authenticate(self, email: str, password: str) -> User:
        """
        Check credentials.

        Raises:
            AuthenticationError: Unknown email, wrong password or inactive user
        """
        user = self.find_by_email(email)
        if not user or not user.is_active or not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login for {email}")
            raise AuthenticationError('Invalid credentials')
        return user
