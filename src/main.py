"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from telegram import Bot

from src.api.webhook import app, configure_app
from src.services import SessionLocal, build_engine, init_db
from src.services.config import BillingConfig, get_billing_config
from src.services.gateway_client import PakasirClient
from src.services.logging import setup_server_logging
from src.services.notification_service import NotificationService, NullNotificationService
from src.services.scheduler import BillingScheduler

# Load environment variables
load_dotenv()

# Configure logging (with file logging)
setup_server_logging()
logger = logging.getLogger(__name__)


def build_notifier(config: BillingConfig) -> NotificationService:
    """Telegram notifier, or the no-op notifier when no bot token is configured."""
    if not config.telegram_bot_token:
        logger.warning("Telegram delivery disabled: TELEGRAM_BOT_TOKEN not set")
        return NullNotificationService()
    return NotificationService(Bot(token=config.telegram_bot_token))


def build_application(config: BillingConfig) -> FastAPI:
    """Wire notifier, gateway client and scheduler into the FastAPI app."""
    engine = build_engine(config.database_url)
    SessionLocal.configure(bind=engine)

    notifier = build_notifier(config)
    gateway = PakasirClient(config.pakasir_base_url, timeout=config.gateway_timeout_seconds)
    scheduler = BillingScheduler(SessionLocal, notifier, config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """Start the billing timers after the server binds, stop them on shutdown."""
        init_db(engine)
        logger.info("Database tables initialized")
        scheduler.start()
        yield
        await scheduler.stop()
        logger.info("Application shutting down")

    app.router.lifespan_context = lifespan
    return configure_app(app, notifier, gateway, scheduler)


async def run_server(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the API server with the billing scheduler."""
    config = get_billing_config()
    application = build_application(config)

    logger.info(f"Starting Uvicorn server on {host}:{port}...")
    server_config = uvicorn.Config(
        app=application,
        host=host,
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(server_config)
    await server.serve()


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="WiFique billing service")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")

    args = parser.parse_args()

    try:
        asyncio.run(run_server(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user (KeyboardInterrupt)")


if __name__ == "__main__":
    main()
