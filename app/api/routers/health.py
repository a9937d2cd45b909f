from __future__ import annotations

from fastapi import APIRouter

from app.api.schemas.auth import HealthResponse


router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")
