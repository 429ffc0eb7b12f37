import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slabscan.api import health_router, scans_router
from slabscan.config import settings
from slabscan.db.store import build_scan_store
from slabscan.market.ebay import EbayTokenCache
from slabscan.models.failure import FailureKind, KnownError
from slabscan.services.valuation import build_orchestrator

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    token_cache = EbayTokenCache(settings.ebay_client_id, settings.ebay_client_secret)
    app.state.orchestrator = build_orchestrator(settings, token_cache=token_cache)
    app.state.scan_store = await build_scan_store(settings)
    yield
    await app.state.scan_store.close()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("slabscan"),
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(scans_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.allowed_origin],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request",
            "kind": FailureKind.VALIDATION_ERROR.value,
            "detail": jsonable_encoder(exc.errors()),
        },
    )
