from fastapi import APIRouter

from app.api.routes import (
    auth,
    chat,
    realtime,
)


api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(chat.router, prefix="/chat", tags=["chat"])
api_router.include_router(realtime.router, prefix="/pusher", tags=["realtime"])
