from fastapi import APIRouter, Depends, status

from taskboard.dependencies import SessionDep, SettingsDep
from taskboard.models import LoginRequest, RegisterRequest, RegisterResponse, TokenResponse
from taskboard.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])


def get_user_service(db: SessionDep, settings: SettingsDep) -> UserService:
    return UserService(db, settings)


@router.post(
    "/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED
)
async def register(data: RegisterRequest, service: UserService = Depends(get_user_service)):
    """Create an account; the password is stored as a salted digest"""
    user = await service.register(data)
    return RegisterResponse(message="User registered successfully", id=user.id)


@router.post("/login", response_model=TokenResponse)
@router.post("/signin", response_model=TokenResponse, include_in_schema=False)
async def login(data: LoginRequest, service: UserService = Depends(get_user_service)):
    """Exchange email and password for a bearer token"""
    return TokenResponse(token=await service.login(data))
