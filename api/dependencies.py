"""
Dependency injection utilities for FastAPI.

This module provides reusable dependencies for database sessions,
authentication, notifications and upload checks.
"""

import logging
from pathlib import Path
from typing import Generator, Optional

import redis
from fastapi import Depends, HTTPException, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from api.config import settings
from backend.models.schema import User
from services.auth_service import AuthService, AuthenticationError
from services.excel_service import XLSX_MEDIA_TYPE
from services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    if url.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}, 'echo': settings.DEBUG}
    return {
        'pool_size': settings.DB_POOL_SIZE,
        'max_overflow': settings.DB_MAX_OVERFLOW,
        'pool_pre_ping': settings.DB_POOL_PRE_PING,
        'echo': settings.DEBUG,
    }


# Create database engine
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Connections are opened lazily on first command
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    Get database session dependency.

    Yields database session and ensures it's closed after use.

    Usage:
        @app.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            # Use db session
            pass
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis() -> redis.Redis:
    return redis_client


def get_notifier(client: redis.Redis = Depends(get_redis)) -> NotificationService:
    return NotificationService(client, settings.NOTIFICATIONS_CHANNEL, settings.NOTIFICATIONS_HISTORY)


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(
        db,
        secret_key=settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
        expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        bcrypt_rounds=settings.BCRYPT_ROUNDS
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthService = Depends(get_auth_service)
) -> Optional[User]:
    """
    Resolve the user behind the bearer token.

    Returns:
        The authenticated user, or None when ENABLE_AUTH is off

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired

    Usage:
        @router.get("/endpoint")
        def endpoint(user: User = Depends(get_current_user)):
            # User is authenticated
            pass
    """
    if not settings.ENABLE_AUTH:
        return None

    if credentials is None or credentials.scheme.lower() != 'bearer':
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )

    try:
        return auth.user_from_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning(f"Rejected token: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"}
        )


def verify_file_size(file_size: int) -> bool:
    """
    Verify uploaded file size is within limit.

    Args:
        file_size: File size in bytes

    Returns:
        True if size is acceptable

    Raises:
        HTTPException: If file is too large
    """
    max_size_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024

    if file_size > max_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size ({file_size / 1024 / 1024:.1f} MB) exceeds maximum allowed "
                   f"({settings.MAX_FILE_SIZE_MB} MB)"
        )

    return True


def verify_file_extension(filename: str) -> bool:
    """
    Verify file has allowed extension.

    Raises:
        HTTPException: If extension is not allowed
    """
    ext = Path(filename or '').suffix.lower()

    if ext not in [e.lower() for e in settings.ALLOWED_EXTENSIONS]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File extension '{ext}' not allowed. "
                   f"Allowed extensions: {', '.join(settings.ALLOWED_EXTENSIONS)}"
        )

    return True


def require_ids(ids) -> None:
    """Bulk actions need at least one id."""
    if not ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No ids selected"
        )


def spreadsheet_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
