from fastapi import APIRouter

from duochat.api.endpoints import rooms, signaling

api_router = APIRouter()

api_router.include_router(rooms.router)
api_router.include_router(signaling.router)
