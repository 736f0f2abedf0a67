"""Shared fixtures and fakes"""
import asyncio
from dataclasses import replace
from datetime import timedelta
from typing import Dict, List, Optional

import pytest

from feedbot.errors import UpstreamUnavailable
from feedbot.services.scoreboard_gateway import ScoreboardGateway
from feedbot.storage.models import GameSnapshot, GameStatus, TeamLine
from feedbot.storage.subscription_store import SubscriptionStore

TEAMS = {
    "chiefs": TeamLine("12", "Kansas City Chiefs", "Chiefs", "Chiefs", "Kansas City", "KC"),
    "giants": TeamLine("19", "New York Giants", "Giants", "Giants", "New York", "NYG"),
    "ravens": TeamLine("33", "Baltimore Ravens", "Ravens", "Ravens", "Baltimore", "BAL"),
    "eagles": TeamLine("21", "Philadelphia Eagles", "Eagles", "Eagles", "Philadelphia", "PHI"),
}


def make_game(home: str, away: str, home_score: str = "0", away_score: str = "0",
              status: GameStatus = GameStatus.IN_PROGRESS, detail: str = "Q1 15:00",
              game_id: Optional[str] = None) -> GameSnapshot:
    home_team = TEAMS[home]
    away_team = TEAMS[away]
    return GameSnapshot(
        game_id=game_id or f"{home}-{away}",
        name=f"{away_team.display_name} at {home_team.display_name}",
        home=replace(home_team, score=home_score, home_away="home"),
        away=replace(away_team, score=away_score, home_away="away"),
        status=status,
        detail=detail,
        venue="GEHA Field at Arrowhead Stadium (Kansas City, MO)",
        broadcasts=("CBS",),
        odds="KC -3.5 (O/U: 47.5)",
    )


class FakeGateway(ScoreboardGateway):
    """ScoreboardGateway serving in-memory data and counting upstream calls"""

    def __init__(self, games: Optional[List[GameSnapshot]] = None,
                 teams: Optional[List[TeamLine]] = None):
        super().__init__(timeout=1)
        self.games = games or []
        self.teams = teams if teams is not None else list(TEAMS.values())
        self.available = True
        self.teams_available = True
        self.scoreboard_calls = 0
        self.teams_calls = 0

    def fetch_scoreboard(self) -> List[GameSnapshot]:
        self.scoreboard_calls += 1
        if not self.available:
            raise UpstreamUnavailable("scoreboard down")
        return list(self.games)

    def fetch_teams(self) -> List[TeamLine]:
        self.teams_calls += 1
        if not (self.available and self.teams_available):
            raise UpstreamUnavailable("teams down")
        return list(self.teams)


class FakeTransport:
    """Records messages instead of sending them"""

    def __init__(self):
        self.sent: List[tuple] = []
        self.result = True
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.failing_users: Dict[str, bool] = {}

    async def send_direct_message(self, user_id: str, text: str) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.failing_users.get(user_id):
            return False
        self.sent.append((user_id, text))
        return self.result


@pytest.fixture
def store(tmp_path):
    return SubscriptionStore(db_path=str(tmp_path / "bot.db"), min_cadence=timedelta(minutes=1))


@pytest.fixture
def gateway():
    return FakeGateway(games=[
        make_game("chiefs", "ravens", "7", "3"),
        make_game("giants", "eagles", "0", "0", status=GameStatus.SCHEDULED, detail="Sun 1:00 PM"),
    ])


@pytest.fixture
def transport():
    return FakeTransport()
