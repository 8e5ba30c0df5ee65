from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile

from taskboard.auth import CurrentUser
from taskboard.core.errors import ForbiddenError, ValidationError
from taskboard.dependencies import HttpClientDep, SettingsDep, StorageDep
from taskboard.models import AvatarResponse, ProfileResponse, ProfileUpdate
from taskboard.routers.auth import get_user_service
from taskboard.services.avatar_service import AvatarService
from taskboard.services.user_service import UserService

router = APIRouter(tags=["users"])


def get_avatar_service(
    storage: StorageDep, http_client: HttpClientDep, settings: SettingsDep
) -> AvatarService:
    return AvatarService(storage, http_client, settings)


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    current: CurrentUser, users: UserService = Depends(get_user_service)
):
    """Profile of the token holder"""
    user = await users.get_user(current.id)
    return ProfileResponse.from_user(user)


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    data: ProfileUpdate,
    current: CurrentUser,
    users: UserService = Depends(get_user_service),
    avatars: AvatarService = Depends(get_avatar_service),
):
    user = await users.get_user(current.id)
    # Reject a taken email before the avatar object is overwritten
    await users.check_email_available(user, data.email)

    avatar_url = None
    if data.photo is not None:
        avatar_url = await avatars.resolve_reference(user.id, data.photo)

    user = await users.update_profile(user, data, avatar_url)
    return ProfileResponse.from_user(user)


@router.put("/users/{user_id}/avatar", response_model=AvatarResponse)
async def upload_avatar(
    user_id: UUID,
    current: CurrentUser,
    avatar: UploadFile | None = File(default=None),
    users: UserService = Depends(get_user_service),
    avatars: AvatarService = Depends(get_avatar_service),
):
    """Upload a new avatar image (multipart field `avatar`)"""
    if current.id != user_id:
        raise ForbiddenError("Cannot change another user's avatar")

    user = await users.get_user(user_id)
    if avatar is None:
        raise ValidationError("Avatar image is required")

    data = await avatar.read()
    public_url = await avatars.store_upload(
        user.id,
        data,
        avatar.content_type or "application/octet-stream",
        avatar.filename,
    )
    user = await users.set_avatar(user, public_url)
    return AvatarResponse(message="Avatar updated", user=ProfileResponse.from_user(user))
