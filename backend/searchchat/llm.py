"""LLM initialization"""
from langchain_core.language_models import BaseChatModel
from langchain_deepseek import ChatDeepSeek
from langchain_openai import ChatOpenAI

from .config import config
from .utils.structured_logger import get_logger

logger = get_logger(__name__)


def get_llm(provider: str = None) -> BaseChatModel:
    """
    Build the chat model used by the research agent

    Strategy:
    1. ``deepseek`` -> ChatDeepSeek
    2. anything else -> ChatOpenAI (also covers OpenAI-compatible gateways
       through OPENAI_BASE_URL)

    Both stream tokens and allow parallel tool calls, so several searches
    or scrapes requested in one step run concurrently.

    Args:
        provider: overrides config.LLM_PROVIDER

    Returns:
        LLM instance
    """
    provider = (provider or config.LLM_PROVIDER).lower()

    if provider == "deepseek":
        logger.info("Using DeepSeek model", model=config.DEEPSEEK_MODEL)
        return ChatDeepSeek(
            model=config.DEEPSEEK_MODEL,
            temperature=config.LLM_TEMPERATURE,
            max_tokens=config.LLM_MAX_TOKENS,
            api_key=config.DEEPSEEK_API_KEY,
            streaming=True,
            model_kwargs={"parallel_tool_calls": True}
        )

    logger.info("Using OpenAI-compatible model", model=config.OPENAI_MODEL, base_url=config.OPENAI_BASE_URL)
    return ChatOpenAI(
        model=config.OPENAI_MODEL,
        temperature=config.LLM_TEMPERATURE,
        max_tokens=config.LLM_MAX_TOKENS,
        api_key=config.OPENAI_API_KEY,
        base_url=config.OPENAI_BASE_URL,
        streaming=True,
    )
