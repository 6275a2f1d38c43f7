"""Langfuse tracing setup (v3.x)"""
import os
from contextlib import contextmanager
from typing import Optional

from langfuse import get_client
from langfuse.langchain import CallbackHandler

from .utils.structured_logger import get_logger

logger = get_logger(__name__)

# Whether tracing is available
_langfuse_enabled: bool = False


def init_langfuse() -> bool:
    """
    Enable Langfuse when the API keys are configured

    The v3 client and CallbackHandler read their settings from the
    environment, so this only validates and normalizes it.

    Returns:
        bool: True when tracing is on
    """
    global _langfuse_enabled

    public_key = os.getenv("LANGFUSE_PUBLIC_KEY")
    secret_key = os.getenv("LANGFUSE_SECRET_KEY")
    host = os.getenv("LANGFUSE_HOST") or os.getenv("LANGFUSE_BASE_URL", "https://cloud.langfuse.com")

    if not public_key or not secret_key:
        logger.info("Langfuse not configured, tracing disabled")
        _langfuse_enabled = False
        return False

    if public_key == "your-public-key-here" or secret_key == "your-secret-key-here":
        logger.warning("Langfuse keys are still placeholders, tracing disabled")
        _langfuse_enabled = False
        return False

    os.environ["LANGFUSE_HOST"] = host
    _langfuse_enabled = True
    logger.info("Langfuse tracing enabled", host=host)
    return True


def create_langfuse_handler(
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
    tags: Optional[list] = None,
    metadata: Optional[dict] = None
):
    """
    Create a Langfuse CallbackHandler for one graph run

    In v3.x the handler takes no arguments; session and user are passed
    through the run metadata using the langfuse_* keys.

    Args:
        session_id: conversation id
        user_id: user id
        tags: trace tags
        metadata: extra metadata

    Returns:
        (handler, metadata_dict), or (None, None) when tracing is off
    """
    if not _langfuse_enabled:
        return None, None

    try:
        handler = CallbackHandler()
    except Exception as e:
        logger.warning("Failed to create Langfuse handler", error=str(e))
        return None, None

    langfuse_metadata = metadata.copy() if metadata else {}
    if session_id:
        langfuse_metadata["langfuse_session_id"] = session_id
    if user_id:
        langfuse_metadata["langfuse_user_id"] = user_id
    if tags:
        langfuse_metadata["langfuse_tags"] = tags

    return handler, langfuse_metadata


@contextmanager
def trace_step(name: str, **span_input):
    """
    Record one pipeline step (admin check, rate check, persistence...) as a span

    Yields the span, or None when tracing is off. Callers attach results
    with ``span.update(output=...)`` when they have one.
    """
    if not _langfuse_enabled:
        yield None
        return

    with get_client().start_as_current_span(name=name, input=span_input or None) as span:
        yield span


def is_langfuse_enabled() -> bool:
    """
    Check whether Langfuse is enabled

    Returns:
        bool: True when tracing is on
    """
    return _langfuse_enabled
