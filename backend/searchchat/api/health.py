"""Health check"""
from fastapi import APIRouter
from pydantic import BaseModel

from .. import __version__
from ..db import database
from ..langfuse_config import is_langfuse_enabled

router = APIRouter()


class HealthResponse(BaseModel):
  """Service status; "degraded" when the chat store does not answer"""
  status: str
  version: str
  database: bool
  tracing: bool


@router.get("/health", response_model=HealthResponse)
async def health():
  db_ok = await database.ping()
  return HealthResponse(
      status="ok" if db_ok else "degraded",
      version=__version__,
      database=db_ok,
      tracing=is_langfuse_enabled(),
  )
