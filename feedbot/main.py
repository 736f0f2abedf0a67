"""Main entry point for Football Feed Bot"""
import asyncio
import signal
import sys

from .config import Config
from .storage.subscription_store import SubscriptionStore
from .services.command_service import CommandService
from .services.discord_client import DiscordClient
from .services.dispatcher import Dispatcher
from .services.notification_service import NotificationService
from .services.scoreboard_gateway import ScoreboardGateway
from .utils.logger import setup_logger

logger = setup_logger(__name__)


class FeedBot:
    """Main bot orchestrator"""

    def __init__(self):
        """Initialize bot components"""
        self.config = Config()
        self.store = SubscriptionStore(
            db_path=self.config.database_path,
            min_cadence=self.config.min_cadence
        )
        self.running = False

        # Initialize services
        self.gateway = ScoreboardGateway(
            base_url=self.config.espn_base_url,
            sport=self.config.espn_sport,
            league=self.config.espn_league,
            timeout=self.config.http_timeout_seconds
        )
        self.command_service = CommandService(
            store=self.store,
            gateway=self.gateway,
            default_cadence_minutes=self.config.default_cadence_minutes,
            http_timeout=self.config.http_timeout_seconds
        )
        self.discord_client = DiscordClient(
            token=self.config.discord_bot_token,
            command_prefix=self.config.command_prefix,
            command_service=self.command_service
        )
        self.dispatcher = Dispatcher(
            transport=self.discord_client,
            timeout=self.config.send_timeout_seconds
        )
        self.notification_service = NotificationService(
            store=self.store,
            gateway=self.gateway,
            dispatcher=self.dispatcher,
            tick_interval=self.config.tick_interval_seconds,
            http_timeout=self.config.http_timeout_seconds
        )

        # Setup signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        self.running = False

    async def start(self):
        """Start the bot"""
        self.running = True
        logger.info("Starting Football Feed Bot...")
        logger.info(f"{self.store.count()} subscription(s) loaded from {self.config.database_path}")

        # Start Discord client in background
        discord_task = asyncio.create_task(self.discord_client.start())

        # Wait a bit for Discord to connect
        await asyncio.sleep(2)

        # Start notification service
        notification_task = asyncio.create_task(self.notification_service.start())

        try:
            # Run until stopped
            while self.running:
                await asyncio.sleep(1)
                if discord_task.done():
                    logger.error("Discord client exited unexpectedly")
                    if not discord_task.cancelled() and discord_task.exception():
                        logger.error(f"Discord client error: {discord_task.exception()}")
                    self.running = False
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            # In-flight tick finishes before the transport goes away
            logger.info("Stopping services...")
            await self.notification_service.stop()
            await notification_task

            await self.discord_client.close()
            discord_task.cancel()

            logger.info("Bot stopped")


async def main():
    """Main entry point"""
    try:
        bot = FeedBot()
        await bot.start()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


def run():
    """Console script entry point"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
