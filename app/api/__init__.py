"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import chat, extraction, gateway, progress

router = APIRouter()

# Conversational data collection (JSON and SSE)
router.include_router(chat.router, tags=["chat"])

# Vision extraction of VA letters, code sheets and DD214s
router.include_router(extraction.router, tags=["extraction"])

# Named persistence operations for the forms UI
router.include_router(gateway.router, tags=["db-proxy"])

# Step status and restart
router.include_router(progress.router, tags=["progress"])
