"""Health check endpoint."""

from fastapi import APIRouter
from pydantic import BaseModel

from taxlens import __version__
from taxlens.tax.rules import supported_years

router = APIRouter(prefix="/api", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    supported_years: list[int]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Report service status and the tax years with loaded rule tables."""
    return HealthResponse(status="ok", version=__version__, supported_years=supported_years())
