"""Delivery policy between the scheduler and the messaging transport"""
import asyncio
from typing import Awaitable, Protocol, Set

from .formatter import MAX_MESSAGE_LENGTH, split_message
from ..errors import DeliveryFailed
from ..utils.logger import setup_logger

logger = setup_logger(__name__)


class MessageTransport(Protocol):
    """Anything that can deliver text to a user"""

    def send_direct_message(self, user_id: str, text: str) -> Awaitable[bool]:
        ...


class Dispatcher:
    """
    Sends rendered messages to subscribers

    Payloads longer than one message are split into chunks, and each chunk is
    sent under its own timeout, so a long update is not cut short just because
    the chunks together take longer than one timeout. A chunk that fails still
    fails the whole send; chunks already delivered stay delivered, so the user
    may see a partial update before the next tick resends it in full.

    A subscriber never has two sends in flight at once. Failures are logged
    and raised as DeliveryFailed; they are never retried here, the next
    scheduler tick is the retry.
    """

    def __init__(
        self,
        transport: MessageTransport,
        timeout: float = 15.0,
        max_length: int = MAX_MESSAGE_LENGTH
    ):
        """
        Args:
            transport: Messaging client doing the delivery
            timeout: Seconds before sending one chunk is abandoned
            max_length: Longest message the transport accepts
        """
        self.transport = transport
        self.timeout = timeout
        self.max_length = max_length
        self._in_flight: Set[str] = set()
        self.sent = 0
        self.failed = 0

    async def send(self, subscriber_id: str, payload: str):
        """
        Deliver a payload to a subscriber

        Raises:
            DeliveryFailed: the transport reported failure, raised, timed out,
                or a send to this subscriber was already in progress
        """
        if subscriber_id in self._in_flight:
            self.failed += 1
            raise DeliveryFailed(subscriber_id, "send already in progress")

        chunks = split_message(payload, self.max_length) or [payload]
        self._in_flight.add(subscriber_id)
        try:
            for index, chunk in enumerate(chunks, start=1):
                delivered = await self._send_chunk(subscriber_id, chunk)
                if not delivered:
                    self.failed += 1
                    raise DeliveryFailed(
                        subscriber_id, f"transport rejected message (chunk {index} of {len(chunks)})"
                    )
        finally:
            self._in_flight.discard(subscriber_id)

        self.sent += 1
        logger.debug(f"Delivered {len(payload)} characters to {subscriber_id} in {len(chunks)} message(s)")

    async def _send_chunk(self, subscriber_id: str, chunk: str) -> bool:
        try:
            return await asyncio.wait_for(
                self.transport.send_direct_message(subscriber_id, chunk),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            self.failed += 1
            logger.error(f"Timed out sending to {subscriber_id} after {self.timeout}s")
            raise DeliveryFailed(subscriber_id, "timed out") from e
        except DeliveryFailed:
            self.failed += 1
            raise
        except Exception as e:
            self.failed += 1
            logger.error(f"Error sending to {subscriber_id}: {e}")
            raise DeliveryFailed(subscriber_id, str(e)) from e
