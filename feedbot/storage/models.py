"""Data models for subscriptions, snapshots and commands"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple


@dataclass(frozen=True)
class Subscriber:
    """A user receiving periodic score updates"""
    subscriber_id: str
    watched_entities: FrozenSet[str]
    cadence: timedelta
    created_at: datetime
    updated_at: datetime
    last_delivered_at: Optional[datetime] = None
    last_payload_hash: Optional[str] = None
    
    def is_due(self, now: datetime) -> bool:
        """True if the cadence has elapsed since the last delivery"""
        if self.last_delivered_at is None:
            return True
        return now - self.last_delivered_at >= self.cadence


class GameStatus(str, Enum):
    """Normalized game state"""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    FINAL = "final"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TeamLine:
    """One team as listed by the upstream API, with its score when in a game"""
    team_id: str
    display_name: str
    short_name: str = ""
    name: str = ""
    location: str = ""
    abbreviation: str = ""
    score: Optional[str] = None
    home_away: Optional[str] = None
    
    def aliases(self) -> Tuple[str, ...]:
        """Every spelling a user might use for this team"""
        names = [self.display_name, self.short_name, self.name, self.abbreviation]
        if self.location and self.name:
            names.append(f"{self.location} {self.name}")
        return tuple(n for n in names if n)


@dataclass(frozen=True)
class GameSnapshot:
    """A game on the scoreboard as of the last fetch"""
    game_id: str
    name: str
    home: TeamLine
    away: TeamLine
    status: GameStatus
    detail: str = ""
    start_time: Optional[datetime] = None
    venue: Optional[str] = None
    broadcasts: Tuple[str, ...] = ()
    odds: Optional[str] = None
    
    def competitors(self) -> Tuple[TeamLine, TeamLine]:
        return (self.home, self.away)


@dataclass(frozen=True)
class EntitySnapshot:
    """A watched team and the game it is currently part of, if any"""
    entity: str
    team: TeamLine
    game: Optional[GameSnapshot] = None
    
    @property
    def display_name(self) -> str:
        return self.team.display_name
    
    @property
    def status(self) -> GameStatus:
        if self.game is None:
            return GameStatus.UNKNOWN
        return self.game.status


class IntentKind(str, Enum):
    """Structured command kinds produced by the command parser"""
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SCORES = "scores"
    TEAM = "team"
    GAME_SCORE = "game_score"
    VENUE = "venue"
    BROADCAST = "broadcast"
    ODDS = "odds"
    SET_FAVORITE = "set_favorite"
    MY_TEAM = "my_team"
    HELP = "help"
    UNKNOWN = "unknown"


@dataclass
class CommandIntent:
    """Normalized output of the command parser"""
    kind: IntentKind
    subscriber_id: str
    entities: List[str] = field(default_factory=list)
    cadence_minutes: Optional[int] = None
    argument: str = ""


@dataclass
class TickReport:
    """Outcome of a single scheduler evaluation pass"""
    started_at: datetime
    due: List[str] = field(default_factory=list)
    dispatched: int = 0
    suppressed: int = 0
    failed: int = 0
    skipped: int = 0
    fetched_entities: int = 0
