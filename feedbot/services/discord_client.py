"""Discord bot client for receiving commands and sending direct messages"""
from typing import Optional
import discord
from discord.ext import commands

from .command_parser import parse_command
from .command_service import CommandService
from .formatter import split_message
from ..utils.logger import setup_logger

logger = setup_logger(__name__)


class DiscordClient:
    """Discord bot client: inbound commands, outbound direct messages"""

    def __init__(
        self,
        token: str,
        command_prefix: str = "!",
        command_service: Optional[CommandService] = None
    ):
        """
        Initialize Discord client

        Args:
            token: Discord bot token
            command_prefix: Prefix required for commands sent in server channels;
                direct messages need no prefix
            command_service: Handler for parsed commands
        """
        self.token = token
        self.command_prefix = command_prefix
        self.command_service = command_service

        intents = discord.Intents.default()
        intents.message_content = True
        intents.dm_messages = True
        self.bot = commands.Bot(command_prefix=command_prefix, intents=intents)

        self._setup_events()

    def _setup_events(self):
        """Set up Discord bot events"""
        @self.bot.event
        async def on_ready():
            logger.info(f"Discord bot logged in as {self.bot.user}")

        @self.bot.event
        async def on_message(message: discord.Message):
            await self.handle_message(message)

    async def start(self):
        """Start the Discord bot"""
        await self.bot.start(self.token)

    async def close(self):
        """Close the Discord bot connection"""
        await self.bot.close()

    def extract_command(self, message: discord.Message) -> Optional[str]:
        """
        Return the command text of a message, or None if it is not for us

        Direct messages are always commands; server messages only when they
        start with the command prefix.
        """
        if message.author.bot:
            return None
        content = message.content.strip()
        if content.startswith(self.command_prefix):
            return content[len(self.command_prefix):].strip()
        if isinstance(message.channel, discord.DMChannel):
            return content
        return None

    async def handle_message(self, message: discord.Message):
        """Parse an incoming message and reply to it"""
        text = self.extract_command(message)
        if not text or self.command_service is None:
            return

        intent = parse_command(text, str(message.author.id))
        try:
            reply = await self.command_service.handle(intent)
        except Exception as e:
            logger.error(f"Error handling command from {message.author.id}: {e}", exc_info=True)
            reply = "Something went wrong handling that command."

        try:
            for chunk in split_message(reply):
                await message.channel.send(chunk)
        except discord.errors.HTTPException as e:
            logger.error(f"Discord API error replying to {message.author.id}: {e}")

    async def send_direct_message(self, user_id: str, text: str) -> bool:
        """
        Send a direct message to a user

        Args:
            user_id: Discord user ID
            text: Message body

        Returns:
            True if the message was sent successfully
        """
        try:
            user = self.bot.get_user(int(user_id)) or await self.bot.fetch_user(int(user_id))
            for chunk in split_message(text):
                await user.send(chunk)
            return True

        except ValueError:
            logger.error(f"Invalid Discord user ID: {user_id}")
            return False
        except discord.errors.NotFound:
            logger.error(f"Discord user {user_id} not found")
            return False
        except discord.errors.Forbidden as e:
            logger.error(f"Permission denied messaging {user_id}: {e}")
            logger.error("The user may have direct messages from server members disabled.")
            return False
        except discord.errors.HTTPException as e:
            logger.error(f"Discord API error sending to {user_id}: {e}")
            return False

