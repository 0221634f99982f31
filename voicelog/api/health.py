"""Liveness probe."""

from fastapi import APIRouter

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}
