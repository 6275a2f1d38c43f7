"""Configuration"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Always load backend/.env, whatever the working directory is
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

BACKEND_DIR = Path(__file__).parent.parent


class Config:
    """Application configuration"""

    # LLM provider: "openai" (any OpenAI-compatible endpoint) or "deepseek"
    LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").lower()

    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    DEEPSEEK_API_KEY = os.getenv("DEEPSEEK_API_KEY")
    DEEPSEEK_MODEL = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")

    LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
    LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2048"))

    # Serper (Google search API)
    SERPER_API_KEY = os.getenv("SERPER_API_KEY")
    SERPER_BASE_URL = os.getenv("SERPER_BASE_URL", "https://google.serper.dev").rstrip("/")
    SEARCH_RESULTS = int(os.getenv("SEARCH_RESULTS", "10"))
    SEARCH_TIMEOUT_S = float(os.getenv("SEARCH_TIMEOUT_S", "15"))

    # Page scraping
    SCRAPE_TIMEOUT_S = float(os.getenv("SCRAPE_TIMEOUT_S", "15"))
    SCRAPE_MAX_BYTES = int(os.getenv("SCRAPE_MAX_BYTES", "1000000"))
    SCRAPE_MAX_CHARS = int(os.getenv("SCRAPE_MAX_CHARS", "20000"))
    SCRAPE_MAX_URLS = int(os.getenv("SCRAPE_MAX_URLS", "10"))
    SCRAPE_CONCURRENCY = int(os.getenv("SCRAPE_CONCURRENCY", "5"))
    SCRAPE_USER_AGENT = os.getenv("SCRAPE_USER_AGENT", "searchchat/0.1 (+https://github.com/searchchat)")

    # Database
    DATABASE_PATH = Path(os.getenv("DATABASE_PATH", str(BACKEND_DIR / "data" / "searchchat.db")))

    # Chat turn limits
    DAILY_REQUEST_LIMIT = int(os.getenv("DAILY_REQUEST_LIMIT", "100"))
    MAX_STEPS = int(os.getenv("MAX_STEPS", "10"))
    TOOL_TIMEOUT_S = float(os.getenv("TOOL_TIMEOUT_S", "60"))
    TITLE_MAX_CHARS = int(os.getenv("TITLE_MAX_CHARS", "50"))
    DEFAULT_TITLE = "New Chat"

    # Auth (tokens are minted by the identity provider with the same secret)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR", str(BACKEND_DIR / "logs"))
    LOG_JSON = os.getenv("LOG_JSON", "true").lower() == "true"

    # CORS; comma separated, "*" allows everything
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


config = Config()
