from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api import health, telegram
from .config import settings
from .core.errors import ProviderError
from .runtime import BotRuntime

import logging

logger = logging.getLogger(__name__)


def create_app(runtime: Optional[BotRuntime] = None) -> FastAPI:
    """Build the app. The runtime is created on startup unless one is given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        bot = runtime or BotRuntime(settings)
        app.state.runtime = bot
        await bot.start()

        if bot.telegram is not None and bot.settings.telegram_webhook_url:
            try:
                await bot.telegram.set_webhook(
                    bot.settings.telegram_webhook_url,
                    secret_token=bot.settings.telegram_webhook_secret or None,
                )
            except ProviderError as e:
                logger.error(f"Could not register Telegram webhook: {e}")

        try:
            yield
        finally:
            await bot.shutdown()

    app = FastAPI(
        title="Solana Copy Trading Bot",
        description="Watches Solana wallets and copies their trades with TP/SL exits",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(telegram.router, tags=["Telegram"])

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": "solcopy",
            "version": "0.1.0",
            "health": "/healthz",
            "status": "/status",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "solcopy.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
