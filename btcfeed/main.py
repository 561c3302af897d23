import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from btcfeed.api.routes import router as api_router
from btcfeed.client import StreamClient
from btcfeed.config import Settings, get_settings
from btcfeed.providers.loader import get_provider


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(client: Optional[StreamClient] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    App factory. Nothing is built at import time; run with:
      uvicorn btcfeed.main:create_app --factory
    """
    settings = settings or (client.settings if client else get_settings())
    if client is None:
        configure_logging(settings)
        client = StreamClient(get_provider(settings), settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # History first, then the trade + kline streams in the background
        await client.connect()
        try:
            yield
        finally:
            await client.disconnect()
            client.close()

    app = FastAPI(title="BTC Stream API", version="0.1.0", lifespan=lifespan)
    app.state.client = client
    app.include_router(api_router)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "app_env": settings.app_env,
            "provider_config": settings.provider,
            "provider_loaded": client.provider.__class__.__name__,
            "connected": client.is_connected,
        }

    return app
