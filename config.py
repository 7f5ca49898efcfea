import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

from chains.registry import CHAINS

load_dotenv()


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer.") from e


def _env_float(name: str, default: float) -> float:
    raw = _env(name, str(default))
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number.") from e


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str = ""
    moralis_api_key: str = ""
    moralis_webhook_secret: str = ""
    webhook_public_url: str = ""
    webhook_path: str = "/webhook/moralis"
    database_path: str = "wallet_tracker.db"
    port: int = 8000
    log_level: str = "INFO"
    supported_chains: Tuple[str, ...] = field(default_factory=lambda: tuple(CHAINS))
    rate_limit_window_seconds: float = 60.0
    rate_limit_max_requests: int = 10
    provider_timeout: float = 30.0
    telegram_timeout: float = 20.0

    @property
    def webhook_url(self) -> str:
        return f"{self.webhook_public_url.rstrip('/')}{self.webhook_path}"

    def validate(self) -> None:
        required = {
            "TELEGRAM_BOT_TOKEN": self.telegram_bot_token,
            "MORALIS_API_KEY": self.moralis_api_key,
            "MORALIS_WEBHOOK_SECRET": self.moralis_webhook_secret,
            "WEBHOOK_PUBLIC_URL": self.webhook_public_url,
        }
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")
        unknown = [c for c in self.supported_chains if c not in CHAINS]
        if unknown:
            raise RuntimeError(f"SUPPORTED_CHAINS has unknown chains: {', '.join(unknown)}")


def load_settings() -> Settings:
    chains_raw = _env("SUPPORTED_CHAINS")
    chains = tuple(c.strip().upper() for c in chains_raw.split(",") if c.strip()) if chains_raw else tuple(CHAINS)

    path = _env("WEBHOOK_PATH", "/webhook/moralis")
    if not path.startswith("/"):
        path = "/" + path

    return Settings(
        telegram_bot_token=_env("TELEGRAM_BOT_TOKEN"),
        moralis_api_key=_env("MORALIS_API_KEY"),
        moralis_webhook_secret=_env("MORALIS_WEBHOOK_SECRET"),
        webhook_public_url=_env("WEBHOOK_PUBLIC_URL"),
        webhook_path=path,
        database_path=_env("DATABASE_PATH", "wallet_tracker.db"),
        port=_env_int("PORT", 8000),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        supported_chains=chains,
        rate_limit_window_seconds=_env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0),
        rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", 10),
        provider_timeout=_env_float("PROVIDER_TIMEOUT_SECONDS", 30.0),
        telegram_timeout=_env_float("TELEGRAM_TIMEOUT_SECONDS", 20.0),
    )
