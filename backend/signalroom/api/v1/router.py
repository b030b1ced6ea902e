from fastapi import APIRouter

from signalroom.api.v1.endpoints import signaling

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(signaling.router)
