"""API router for v1 endpoints."""

from fastapi import APIRouter

from groundwrite.api import generate

router = APIRouter()

# Draft generation routes
router.include_router(generate.router, tags=["generate"])
