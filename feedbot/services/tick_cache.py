"""Per-tick fetch cache in front of the scoreboard gateway"""
import asyncio
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .scoreboard_gateway import ScoreboardGateway
from ..errors import UpstreamUnavailable
from ..storage.models import EntitySnapshot, GameSnapshot, TeamLine
from ..utils.logger import setup_logger
from ..utils.team_names import normalize_entity

logger = setup_logger(__name__)


class TickCache:
    """
    Memoizes upstream fetches for the duration of one scheduler tick

    Concurrent requests for the same key share a single in-flight fetch, and a
    failure is cached too, so a dead upstream is hit once per tick rather than
    once per subscriber. A new instance is created for every tick.
    """

    def __init__(self, gateway: ScoreboardGateway, timeout: float = 10.0):
        """
        Args:
            gateway: Gateway doing the actual HTTP work
            timeout: Seconds to wait for any single upstream call
        """
        self.gateway = gateway
        self.timeout = timeout
        self._tasks: Dict[str, asyncio.Task] = {}
        self._teams: Optional[Tuple[Optional[List[TeamLine]], Optional[UpstreamUnavailable]]] = None
        self._teams_lock = threading.Lock()
        self.team_fetches = 0

    async def fetch_scoreboard(self) -> List[GameSnapshot]:
        return await self._memoize("scoreboard", lambda: self._call(self.gateway.fetch_scoreboard))

    async def fetch_team(self, name: str) -> Optional[EntitySnapshot]:
        """
        Resolve one team, fetching each upstream resource at most once

        Raises:
            UpstreamUnavailable: if the scoreboard (or, for teams without a
                game, the team list) could not be fetched
        """
        entity = normalize_entity(name)
        return await self._memoize(f"team:{entity}", lambda: self._resolve(entity))

    async def _resolve(self, entity: str) -> Optional[EntitySnapshot]:
        self.team_fetches += 1
        games = await self.fetch_scoreboard()
        return await self._call(
            lambda: self.gateway.fetch_team(entity, games=games, load_teams=self._load_teams)
        )

    def _load_teams(self) -> List[TeamLine]:
        """Team list for this tick, fetched once; runs on worker threads"""
        with self._teams_lock:
            if self._teams is None:
                try:
                    self._teams = (self.gateway.fetch_teams(), None)
                except UpstreamUnavailable as e:
                    self._teams = (None, e)
            teams, error = self._teams
        if error is not None:
            raise error
        return teams

    async def _memoize(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
        return await asyncio.shield(task)

    async def _call(self, func: Callable[[], Any]) -> Any:
        """Run a blocking gateway call in a worker thread, bounded by the timeout"""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Upstream call timed out after {self.timeout}s")
            raise UpstreamUnavailable(f"Timed out after {self.timeout}s") from e

    def close(self):
        """Drop cached results; pending fetches are cancelled"""
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
            elif not task.cancelled():
                # mark as retrieved
                task.exception()
        self._tasks.clear()
