# btcfeed/config.py
import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Loads variables from a local .env file into environment variables (dev only).
load_dotenv()


@dataclass(frozen=True)
class Settings:
    # App config
    app_env: str
    log_level: str
    provider: str
    symbol: str

    # Provider config (Binance)
    binance_rest_url: str
    binance_ws_url: str
    http_timeout_seconds: float
    ws_ping_interval_seconds: float
    ws_ping_timeout_seconds: float

    # Series config
    kline_interval_minutes: int
    history_lookback_minutes: int
    history_limit: int
    max_candles: int
    price_suffix: str


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None


def get_settings() -> Settings:
    """
    Reads env vars and returns a Settings object.
    """
    max_candles = _int_env("MAX_CANDLES", 100)
    if max_candles < 1:
        raise RuntimeError("MAX_CANDLES must be at least 1")

    return Settings(
        app_env=os.getenv("APP_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        provider=os.getenv("PROVIDER", "BINANCE"),
        symbol=os.getenv("SYMBOL", "BTCUSDT").strip().upper(),
        binance_rest_url=os.getenv("BINANCE_REST_URL", "https://api.binance.com").rstrip("/"),
        binance_ws_url=os.getenv("BINANCE_WS_URL", "wss://stream.binance.com:9443/ws").rstrip("/"),
        http_timeout_seconds=_float_env("HTTP_TIMEOUT_SECONDS", 10.0),
        ws_ping_interval_seconds=_float_env("WS_PING_INTERVAL_SECONDS", 20.0),
        ws_ping_timeout_seconds=_float_env("WS_PING_TIMEOUT_SECONDS", 20.0),
        kline_interval_minutes=_int_env("KLINE_INTERVAL_MINUTES", 1),
        history_lookback_minutes=_int_env("HISTORY_LOOKBACK_MINUTES", 30),
        history_limit=_int_env("HISTORY_LIMIT", 30),
        max_candles=max_candles,
        price_suffix=os.getenv("PRICE_SUFFIX", "USD"),
    )
