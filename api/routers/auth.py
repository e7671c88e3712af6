"""
Auth router - registration, login and current user.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_auth_service, get_current_user
from api.schemas.auth_schema import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from backend.models.schema import User
from services.auth_service import AuthService, AuthenticationError

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/auth', tags=['auth'])


@router.post('/register', response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: RegisterRequest,
    auth: AuthService = Depends(get_auth_service)
):
    """
    Create a user account and return a token for it.

    **Example:**
    ```bash
    curl -X POST -H "Content-Type: application/json" \\
         -d '{"email": "coordinador@campana.co", "password": "secreto123", "full_name": "Coordinador"}' \\
         http://localhost:8000/api/auth/register
    ```

    **Errors:**
    - 409 if the email is already registered
    """
    user = auth.register(request.email, request.password, request.full_name)
    return TokenResponse(
        user=UserResponse.model_validate(user),
        access_token=auth.create_access_token(user),
        message="User registered successfully"
    )


@router.post('/login', response_model=TokenResponse)
def login(
    request: LoginRequest,
    auth: AuthService = Depends(get_auth_service)
):
    """
    Exchange email and password for a bearer token.

    **Errors:**
    - 401 for unknown email, wrong password or inactive user
    """
    try:
        user = auth.authenticate(request.email, request.password)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"}
        )
    logger.info(f"User {user.id} logged in")
    return TokenResponse(user=UserResponse.model_validate(user), access_token=auth.create_access_token(user))


@router.get('/me', response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    """Current user, from the bearer token."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Authentication is disabled"
        )
    return UserResponse.model_validate(user)
