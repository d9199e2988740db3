import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import NotFoundError
from src.db.models.user import User

logger = structlog.get_logger()


class UserService:
    """Service for the minimal user identity rows."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create_user(self, username: str | None = None, display_name: str | None = None) -> User:
        user = User(username=username, display_name=display_name)
        self.db.add(user)
        await self.db.flush()
        logger.info("User created", user_id=user.id)
        return user

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})
        return user
