from fastapi import APIRouter

from app.interfaces.api.admin_api_keys import router as admin_api_keys_router
from app.interfaces.api.admin_environments import router as admin_environments_router
from app.interfaces.api.admin_flags import router as admin_flags_router
from app.interfaces.api.admin_webhooks import router as admin_webhooks_router
from app.interfaces.api.flag_state import router as flag_state_router
from app.interfaces.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(flag_state_router)
api_router.include_router(admin_flags_router)
api_router.include_router(admin_environments_router)
api_router.include_router(admin_api_keys_router)
api_router.include_router(admin_webhooks_router)
