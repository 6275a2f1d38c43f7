"""FastAPI application"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import chat, conversations, health
from .config import config
from .db import init_db
from .db.database import OwnershipViolation
from .langfuse_config import init_langfuse
from .tools import build_tools
from .utils.structured_logger import get_logger, setup_structured_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: logging, tracing, database. The chat model is created on first use."""
    setup_structured_logging(
        log_level=config.LOG_LEVEL,
        log_dir=config.LOG_DIR,
        enable_json=config.LOG_JSON,
    )
    init_langfuse()
    await init_db()

    app.state.tool_factory = build_tools
    logger.info("searchchat started", version=__version__)

    yield

    logger.info("searchchat stopped")


app = FastAPI(
    title="searchchat API",
    description="Chat with a language model that searches and reads the web",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
  CORSMiddleware,
  allow_origins=config.CORS_ORIGINS,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)


@app.exception_handler(OwnershipViolation)
async def ownership_violation_handler(request: Request, exc: OwnershipViolation):
    logger.warning("Ownership violation", chat_id=exc.chat_id, path=request.url.path)
    return JSONResponse(status_code=403, content={"detail": "Forbidden"})


app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(chat.router, tags=["chat"])
app.include_router(conversations.router, prefix="/api", tags=["chats"])


@app.get("/")
async def root():
    """Root"""
    return {
        "message": "searchchat API",
        "docs": "/docs",
        "health": "/api/health"
    }


def run():
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
