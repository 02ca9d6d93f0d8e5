"""
FocusTâche – Backend API
Start with: uvicorn main:app --reload
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import CORS_ORIGINS, LOG_LEVEL
from db import init_db
from errors import FocusError, InvalidArgument
from routers import dashboard, notes, notifications, sessions, tasks

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("FocusTâche API ready")
    yield


app = FastAPI(
    title="FocusTâche API",
    description="Student tasks with focus and Pomodoro sessions",
    version="0.1.0",
    lifespan=lifespan,
)

# Allow frontend to call this API
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FocusError)
async def focus_error_handler(request: Request, exc: FocusError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "detail": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body") or "body"
        problems.append(f"{field}: {error['msg']}")
    logger.info("%s %s -> InvalidArgument: %s", request.method, request.url.path, problems)
    return JSONResponse(
        status_code=InvalidArgument.status_code,
        content={"error": InvalidArgument.kind, "detail": "; ".join(problems)},
    )


app.include_router(tasks.router)
app.include_router(notes.router)
app.include_router(sessions.router)
app.include_router(notifications.router)
app.include_router(dashboard.router)


@app.get("/health")
def health():
    """Check that the API is running. Frontend can call this first."""
    return {"status": "ok", "message": "FocusTâche API is running"}


@app.get("/")
def root():
    """Root welcome."""
    return {"app": "FocusTâche", "docs": "/docs"}
