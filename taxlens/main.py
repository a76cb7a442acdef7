"""FastAPI application entry point with lifespan management."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from taxlens import __version__
from taxlens.api.analyze import router as analyze_router
from taxlens.api.health import router as health_router
from taxlens.api.middleware import RequestContextMiddleware
from taxlens.core.config import settings
from taxlens.core.logging import configure_logging, get_logger
from taxlens.core.sentry import init_sentry
from taxlens.tax.rules import supported_years

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging and error tracking, then load rule tables.

    Loading the rule tables at startup surfaces malformed rule data before
    the first request.
    """
    configure_logging()
    logger.info("Starting application", environment=settings.environment)

    if init_sentry():
        logger.info("Sentry initialized")

    logger.info("Rule tables loaded", years=supported_years())

    yield

    logger.info("Shutting down application")


app = FastAPI(
    title="TaxLens",
    description="IRS transcript analysis: tax computation, findings and action plans",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

app.include_router(health_router)
app.include_router(analyze_router)
