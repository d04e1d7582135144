"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import adaptive

router = APIRouter()

# Adaptive scoring, rules and policy routes
router.include_router(adaptive.router)
