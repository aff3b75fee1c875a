import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from odds_engine.api.v1.router import api_router
from odds_engine.config import settings
from odds_engine.errors import InvalidQuote, SnapshotStoreUnavailable

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(InvalidQuote)
async def invalid_quote_handler(request: Request, exc: InvalidQuote) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(SnapshotStoreUnavailable)
@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("snapshot store unavailable: path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Odds store temporarily unavailable; retry shortly."})
