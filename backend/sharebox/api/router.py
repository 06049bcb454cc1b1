from __future__ import annotations

from fastapi import APIRouter

from sharebox.api.routes import shares

api_router = APIRouter()
api_router.include_router(shares.router)
