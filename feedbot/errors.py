"""Exceptions raised by the subscription core"""


class FeedBotError(Exception):
    """Base class for bot errors"""


class InvalidCadence(FeedBotError):
    """Requested update cadence is below the configured minimum"""

    def __init__(self, cadence_minutes: float, minimum_minutes: float):
        self.cadence_minutes = cadence_minutes
        self.minimum_minutes = minimum_minutes
        super().__init__(
            f"Cadence of {cadence_minutes:g} minute(s) is below the minimum of "
            f"{minimum_minutes:g} minute(s)"
        )


class EmptyEntitySet(FeedBotError):
    """Subscribe was called without any team to watch"""

    def __init__(self, subscriber_id: str):
        self.subscriber_id = subscriber_id
        super().__init__(f"No teams given for subscriber {subscriber_id}")


class UpstreamUnavailable(FeedBotError):
    """Scoreboard API could not be reached or returned unusable data"""


class DeliveryFailed(FeedBotError):
    """A message could not be delivered to a subscriber"""

    def __init__(self, subscriber_id: str, reason: str):
        self.subscriber_id = subscriber_id
        self.reason = reason
        super().__init__(f"Delivery to {subscriber_id} failed: {reason}")
