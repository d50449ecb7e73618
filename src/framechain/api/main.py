from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from databases import Database
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from framechain.api.routes import enhancement, models, segments, timelines
from framechain.config import resolve_config
from framechain.container import build_services
from framechain.errors import FrameChainError
from framechain.logging_setup import configure_logging

# --- CONFIG ---
config = resolve_config()
DATABASE_URL = config.database.url
MEDIA_DIR = os.path.abspath(config.storage.root_dir)
os.makedirs(MEDIA_DIR, exist_ok=True)

database = Database(DATABASE_URL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(
        config.logging.log_file, config.logging.level, enable_console=config.logging.console
    )
    await database.connect()
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(database, config)
    logger.info("API started (database=%s)", DATABASE_URL)
    yield
    await database.disconnect()


app = FastAPI(title="framechain", lifespan=lifespan)
app.mount("/media", StaticFiles(directory=MEDIA_DIR), name="media")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(segments.router)
app.include_router(timelines.router)
app.include_router(models.router)
app.include_router(enhancement.router)


# --- ERROR ENVELOPE ---


@app.exception_handler(FrameChainError)
async def framechain_error_handler(request: Request, exc: FrameChainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc)})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = [
        f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}" for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"success": False, "error": "; ".join(problems)})


# --- API ENDPOINTS ---


@app.get("/")
async def root():
    return {
        "success": True,
        "data": {"message": "framechain timeline API", "docs": "/docs", "health": "/health"},
    }


@app.get("/health")
async def health_check():
    return {"success": True, "data": {"status": "ok"}}
