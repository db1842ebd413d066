from fastapi import APIRouter, Depends, Request, status

from marketplace.api.deps import get_user_service
from marketplace.core.rate_limiter import limiter
from marketplace.schemas.user import TokenResponse, UserCreate, UserLogin, UserResponse
from marketplace.services.user_service import UserService
from marketplace.utils.response import dump, success

router = APIRouter()


@router.post(
    "/register",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Register user account",
    description="""
Creates a buyer or seller account.

Validation:
1. Email and username must be unique
2. Password needs at least 8 characters with letters and digits
3. Admin accounts cannot be self-registered
""",
    responses={
        201: {"description": "Registration successful"},
        409: {"description": "Email or username already registered"},
        422: {"description": "Validation error"},
    },
)
@limiter.limit("5/minute")
def register(
    request: Request,
    user_in: UserCreate,
    service: UserService = Depends(get_user_service),
):
    user = service.register(
        username=user_in.username,
        email=user_in.email,
        password=user_in.password,
        role=user_in.role,
        fullname=user_in.fullname,
        phone=user_in.phone,
    )
    return success(data=dump(UserResponse, user), message="Registration successful")


@router.post(
    "/login",
    response_model=dict,
    summary="Login user",
    responses={
        200: {"description": "Login successful"},
        401: {"description": "Invalid credentials"},
        403: {"description": "Account inactive"},
    },
)
@limiter.limit("5/minute")
def login(
    request: Request,
    credentials: UserLogin,
    service: UserService = Depends(get_user_service),
):
    user, access_token = service.login(credentials.email, credentials.password)
    token = TokenResponse(access_token=access_token, user=UserResponse.model_validate(user))
    return success(
        data=token.model_dump(),
        message="Login successful",
    )
