import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.core.config import Settings
from taskboard.core.errors import ConflictError, NotFoundError, UnauthorizedError
from taskboard.core.security import create_access_token, hash_password, verify_password
from taskboard.models import LoginRequest, ProfileUpdate, RegisterRequest, User, get_utc_now

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.exec(select(User).where(User.email == email))
        return result.first()

    async def get_user(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def _save(self, user: User) -> User:
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race against a concurrent registration with the same email
            await self.db.rollback()
            raise ConflictError("Email already registered") from e
        await self.db.refresh(user)
        return user

    async def register(self, data: RegisterRequest) -> User:
        if await self.get_by_email(data.email):
            raise ConflictError("Email already registered")

        user = User(
            name=data.name,
            email=data.email,
            password=hash_password(data.password, rounds=self.settings.bcrypt_rounds),
        )
        user = await self._save(user)
        logger.info("Registered user %s", user.id)
        return user

    async def login(self, data: LoginRequest) -> str:
        """Check credentials and return a signed bearer token."""
        user = await self.get_by_email(data.email)
        if not user:
            raise NotFoundError("User not found")
        if not verify_password(data.password, user.password):
            raise UnauthorizedError("Incorrect password")

        return create_access_token(
            user.id,
            user.email,
            self.settings.jwt_secret,
            algorithm=self.settings.jwt_algorithm,
            expires_in=self.settings.jwt_expires_seconds,
        )

    async def check_email_available(self, user: User, email: str | None):
        """Raise ConflictError if `email` belongs to another account."""
        if email is not None and email != user.email and await self.get_by_email(email):
            raise ConflictError("Email already registered")

    async def update_profile(
        self, user: User, data: ProfileUpdate, avatar_url: str | None = None
    ) -> User:
        """
        Apply the provided profile fields. `avatar_url` is only written when
        the update carried a `photo`.
        """
        if data.name is not None:
            user.name = data.name
        if data.email is not None and data.email != user.email:
            await self.check_email_available(user, data.email)
            user.email = data.email
        if data.photo is not None:
            user.avatar_url = avatar_url
        user.updated_at = get_utc_now()
        return await self._save(user)

    async def set_avatar(self, user: User, avatar_url: str) -> User:
        user.avatar_url = avatar_url
        user.updated_at = get_utc_now()
        return await self._save(user)


async def ensure_default_user(db: AsyncSession, settings: Settings) -> User:
    """Make sure at least one user exists (development convenience)."""
    result = await db.exec(select(User).limit(1))
    user = result.first()
    if user:
        return user

    user = User(
        name=settings.seed_user_name,
        email=settings.seed_user_email,
        password=hash_password(settings.seed_user_password, rounds=settings.bcrypt_rounds),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Seeded default user %s", user.email)
    return user
