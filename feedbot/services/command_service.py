"""Acts on parsed commands against the store and gateway"""
from datetime import timedelta
from typing import Callable, List, Optional, Tuple

from .formatter import (
    format_broadcasts,
    format_game_summary,
    format_help,
    format_odds,
    format_scoreboard,
    format_team,
    format_venue,
)
from .scoreboard_gateway import ScoreboardGateway
from .tick_cache import TickCache
from ..errors import EmptyEntitySet, InvalidCadence, UpstreamUnavailable
from ..storage.models import CommandIntent, EntitySnapshot, GameSnapshot, IntentKind
from ..storage.subscription_store import SubscriptionStore
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

UNAVAILABLE_REPLY = "NFL data is unavailable right now. Please try again in a few minutes."


class CommandService:
    """Handles user commands and builds the reply text"""

    def __init__(
        self,
        store: SubscriptionStore,
        gateway: ScoreboardGateway,
        default_cadence_minutes: int = 15,
        http_timeout: float = 10.0
    ):
        """
        Initialize command service

        Args:
            store: Subscription store
            gateway: Scoreboard gateway for one-shot queries
            default_cadence_minutes: Cadence used when 'follow' has no minutes
            http_timeout: Seconds to wait for an upstream call
        """
        self.store = store
        self.gateway = gateway
        self.default_cadence_minutes = default_cadence_minutes
        self.http_timeout = http_timeout

    @property
    def min_cadence_minutes(self) -> int:
        return int(self.store.min_cadence.total_seconds() // 60)

    async def handle(self, intent: CommandIntent) -> str:
        """
        Execute an intent

        Returns:
            Reply to send back to the user
        """
        logger.debug(f"Handling {intent.kind.value} from {intent.subscriber_id}")

        if intent.kind == IntentKind.HELP:
            return format_help(self.default_cadence_minutes, self.min_cadence_minutes)
        if intent.kind == IntentKind.SUBSCRIBE:
            return await self._subscribe(intent)
        if intent.kind == IntentKind.UNSUBSCRIBE:
            self.store.remove(intent.subscriber_id)
            return "You will no longer receive updates."
        if intent.kind == IntentKind.SET_FAVORITE:
            if not intent.argument:
                return 'Tell me which team, e.g. "set favorite chiefs".'
            self.store.set_favorite(intent.subscriber_id, intent.argument)
            return f"Your favorite team is set to {intent.argument}."
        if intent.kind == IntentKind.UNKNOWN:
            return 'Unknown command. Type "help" to see available commands.'

        try:
            return await self._query(intent)
        except UpstreamUnavailable as e:
            logger.warning(f"One-shot query {intent.kind.value} failed: {e}")
            return UNAVAILABLE_REPLY

    async def _subscribe(self, intent: CommandIntent) -> str:
        minutes = intent.cadence_minutes
        if minutes is None:
            minutes = self.default_cadence_minutes
        try:
            entities, unknown = await self._recognize_teams(intent.entities)
        except UpstreamUnavailable as e:
            logger.warning(f"Could not check teams for {intent.subscriber_id}, accepting as typed: {e}")
            entities, unknown = list(intent.entities), []

        not_recognized = f"I didn't recognize {', '.join(unknown)}."
        if unknown and not entities:
            return f'{not_recognized} Check the team names, e.g. "follow chiefs, giants 15".'

        try:
            subscriber = self.store.upsert(
                intent.subscriber_id,
                entities,
                timedelta(minutes=minutes)
            )
        except InvalidCadence as e:
            return f"Updates can be sent at most every {e.minimum_minutes:g} minute(s)."
        except EmptyEntitySet:
            return 'Tell me which teams to follow, e.g. "follow chiefs, giants 15".'

        teams = ", ".join(sorted(subscriber.watched_entities))
        reply = f"You will receive updates for {teams} every {minutes} minute(s)."
        if unknown:
            reply += f" {not_recognized}"
        return reply

    async def _recognize_teams(self, names: List[str]) -> Tuple[List[str], List[str]]:
        """
        Match typed team names against the league

        A name no team goes by is split into its words when every word is a
        team on its own, so 'chiefs giants' follows both teams while
        'kansas city chiefs' stays one.

        Returns:
            (recognized entities, names that matched nothing)

        Raises:
            UpstreamUnavailable: the scoreboard or team list could not be fetched
        """
        cache = TickCache(self.gateway, timeout=self.http_timeout)
        recognized, unknown = [], []
        try:
            for name in names:
                if await cache.fetch_team(name) is not None:
                    recognized.append(name)
                    continue
                words = name.split()
                if len(words) > 1:
                    matches = [await cache.fetch_team(word) for word in words]
                    if all(match is not None for match in matches):
                        recognized.extend(words)
                        continue
                unknown.append(name)
        finally:
            cache.close()
        return recognized, unknown

    async def _query(self, intent: CommandIntent) -> str:
        cache = TickCache(self.gateway, timeout=self.http_timeout)
        try:
            if intent.kind == IntentKind.SCORES:
                return format_scoreboard(await cache.fetch_scoreboard())
            if intent.kind == IntentKind.TEAM:
                return await self._team_reply(cache, intent.argument)
            if intent.kind == IntentKind.MY_TEAM:
                favorite = self.store.get_favorite(intent.subscriber_id)
                if not favorite:
                    return 'You haven\'t set a favorite team yet. Use "set favorite [team]" to set one.'
                return await self._team_reply(cache, favorite)

            formatters = {
                IntentKind.GAME_SCORE: format_game_summary,
                IntentKind.VENUE: format_venue,
                IntentKind.BROADCAST: format_broadcasts,
                IntentKind.ODDS: format_odds,
            }
            return await self._game_reply(cache, intent.argument, formatters[intent.kind])
        finally:
            cache.close()

    async def _team_reply(self, cache: TickCache, name: str) -> str:
        snapshot = await cache.fetch_team(name)
        if snapshot is None:
            return f"Team {name} not found."
        return format_team(snapshot)

    async def _game_reply(
        self,
        cache: TickCache,
        name: str,
        formatter: Callable[[GameSnapshot], str]
    ) -> str:
        snapshot: Optional[EntitySnapshot] = await cache.fetch_team(name)
        if snapshot is None or snapshot.game is None:
            return f"No game found for {name}."
        return formatter(snapshot.game)
