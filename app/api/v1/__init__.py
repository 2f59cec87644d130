# app/api/v1/__init__.py

from fastapi import APIRouter

from . import rooms

api_router = APIRouter()

# router 側で prefix を持っている前提にする
api_router.include_router(rooms.router)     # rooms.router 内で prefix="/rooms"
