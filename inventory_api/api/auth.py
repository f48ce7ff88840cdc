from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from inventory_api.api.deps import get_current_user
from inventory_api.database import get_db
from inventory_api.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UserResponse
)
from inventory_api.services.auth_service import (
    AuthService,
    InvalidCredentialsError,
    UserAlreadyExistsError
)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    description="Create a user account and return a bearer token valid for 24 hours."
)
def register(
    data: RegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Register a user.

    - **username**: Unique, non-empty
    - **email**: Unique, well-formed
    - **password**: At least 6 characters
    """
    service = AuthService(db)
    try:
        user, token = service.register(data)
    except UserAlreadyExistsError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return AuthResponse(
        message="User registered successfully",
        token=token,
        user=UserResponse.model_validate(user)
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Log in",
    description="Exchange email and password for a bearer token."
)
def login(
    data: LoginRequest,
    db: Session = Depends(get_db)
):
    """Log in with email and password."""
    service = AuthService(db)
    try:
        user, token = service.login(data)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    return AuthResponse(
        message="Login successful",
        token=token,
        user=UserResponse.model_validate(user)
    )


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Current user",
    description="Return the user identified by the bearer token."
)
def me(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get the authenticated user as currently stored."""
    user = AuthService(db).get_user(current_user["id"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists"
        )
    return UserResponse.model_validate(user)
