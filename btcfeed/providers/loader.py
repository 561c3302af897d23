from btcfeed.config import Settings
from btcfeed.providers.base import MarketDataProvider
from btcfeed.providers.binance import BinanceProvider


def get_provider(settings: Settings) -> MarketDataProvider:
    """
    Provider loader / factory.

    Reads PROVIDER from config and returns an instance of the selected provider.
    This is the single place that knows about concrete providers.
    """
    provider_name = settings.provider.strip().upper()

    if provider_name == "BINANCE":
        return BinanceProvider(
            rest_url=settings.binance_rest_url,
            ws_url=settings.binance_ws_url,
            timeout_s=settings.http_timeout_seconds,
        )

    raise ValueError(f"Unknown PROVIDER='{settings.provider}'. Expected: BINANCE")
