"""Centralized API router registration."""

from fastapi import APIRouter

from linkcard.routers import preview

api_router = APIRouter()
api_router.include_router(preview.router)

__all__ = ["api_router"]
