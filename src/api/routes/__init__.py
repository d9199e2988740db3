from fastapi import APIRouter

from src.api.routes.leagues import router as leagues_router
from src.api.routes.users import router as users_router

router = APIRouter()

router.include_router(users_router, prefix="/users", tags=["users"])
router.include_router(leagues_router, prefix="/leagues", tags=["leagues"])
