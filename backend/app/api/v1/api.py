from fastapi import APIRouter

from backend.app.api.v1.endpoints import auth, capsules, two_factor, users

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(two_factor.router, prefix="/users/2fa", tags=["2fa"])
api_router.include_router(capsules.router, prefix="/capsules", tags=["capsules"])
