import os
from dotenv import load_dotenv

load_dotenv()


def _csv_env(key: str, default: str) -> list[str]:
    """Read a comma-separated environment variable as an upper-cased list."""
    raw = os.getenv(key, default)
    return [item.strip().upper() for item in raw.split(",") if item.strip()]


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./aiexpense.db")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Server settings
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8080"))

    # AI backend used for parsing and category suggestion
    AI_PROVIDER: str = os.getenv("AI_PROVIDER", "gemini")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-lite")
    GEMINI_BASE_URL: str = os.getenv(
        "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
    )
    AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "10"))

    # Currency handling
    DEFAULT_HOME_CURRENCY: str = os.getenv("DEFAULT_HOME_CURRENCY", "TWD").upper()
    EXCHANGE_RATE_API_KEY: str = os.getenv("EXCHANGE_RATE_API_KEY", "")
    EXCHANGE_RATE_BASE_URL: str = os.getenv(
        "EXCHANGE_RATE_BASE_URL", "https://v6.exchangerate-api.com/v6"
    )
    # Base currencies refreshed on schedule; also the tracked target symbols
    EXCHANGE_RATE_BASES: list[str] = _csv_env("EXCHANGE_RATE_BASES", "USD,EUR,TWD,JPY,CNY")

    # Pricing ledger sync: "gemini" (static table) or "openrouter" (models API)
    PRICING_PROVIDER: str = os.getenv("PRICING_PROVIDER", "gemini")
    OPENROUTER_API_KEY: str = os.getenv("OPENROUTER_API_KEY", "")

    # Detached cost logging
    COST_LOG_QUEUE_SIZE: int = int(os.getenv("COST_LOG_QUEUE_SIZE", "1000"))
    COST_LOG_TIMEOUT_SECONDS: float = float(os.getenv("COST_LOG_TIMEOUT_SECONDS", "5"))


settings = Settings()
