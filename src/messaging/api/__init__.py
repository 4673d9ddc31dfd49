"""Messaging API module initialization."""

from fastapi import APIRouter

from messaging.api.routes import (
    campaign_routes,
    contact_routes,
    inbox_routes,
    message_routes,
    retry_routes,
)

messaging_router = APIRouter()

messaging_router.include_router(message_routes.router)
messaging_router.include_router(contact_routes.router)
messaging_router.include_router(inbox_routes.router)
messaging_router.include_router(retry_routes.router)
messaging_router.include_router(campaign_routes.router)

__all__ = ["messaging_router"]
