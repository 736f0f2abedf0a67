"""Gateway to the ESPN site API scoreboard and team endpoints"""
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional
import requests

from ..errors import UpstreamUnavailable
from ..storage.models import EntitySnapshot, GameSnapshot, GameStatus, TeamLine
from ..utils.logger import setup_logger
from ..utils.team_names import normalize_entity
from ..utils.timezone import parse_api_timestamp

logger = setup_logger(__name__)

STATUS_STATES = {
    "pre": GameStatus.SCHEDULED,
    "in": GameStatus.IN_PROGRESS,
    "post": GameStatus.FINAL,
}


class ScoreboardGateway:
    """Read-only client for the ESPN scoreboard and team list"""

    def __init__(
        self,
        base_url: str = "https://site.api.espn.com/apis/site/v2/sports",
        sport: str = "football",
        league: str = "nfl",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize scoreboard gateway

        Args:
            base_url: ESPN site API root
            sport: Sport path segment (e.g. 'football')
            league: League path segment (e.g. 'nfl')
            timeout: Seconds before an HTTP request is abandoned
            session: Optional requests session to reuse
        """
        self.scoreboard_url = f"{base_url.rstrip('/')}/{sport}/{league}/scoreboard"
        self.teams_url = f"{base_url.rstrip('/')}/{sport}/{league}/teams"
        self.timeout = timeout
        self.session = session or requests.Session()
        # Session is shared by worker threads and is not thread-safe
        self._session_lock = threading.Lock()

    def fetch_scoreboard(self) -> List[GameSnapshot]:
        """
        Fetch every game on the current scoreboard

        Raises:
            UpstreamUnavailable: on network, HTTP or parse failure
        """
        data = self._get_json(self.scoreboard_url)
        events = data.get('events')
        if not isinstance(events, list):
            raise UpstreamUnavailable("Scoreboard payload has no events list")

        games = []
        for event in events:
            game = parse_event(event)
            if game:
                games.append(game)

        logger.debug(f"Parsed {len(games)} games from scoreboard")
        return games

    def fetch_teams(self) -> List[TeamLine]:
        """
        Fetch the league's team list

        Raises:
            UpstreamUnavailable: on network, HTTP or parse failure
        """
        data = self._get_json(self.teams_url)
        try:
            entries = data['sports'][0]['leagues'][0]['teams']
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamUnavailable(f"Unexpected team list payload: {e}") from e

        return [parse_team(entry.get('team', {})) for entry in entries]

    def fetch_team(
        self,
        name: str,
        games: Optional[List[GameSnapshot]] = None,
        load_teams: Optional[Callable[[], List[TeamLine]]] = None
    ) -> Optional[EntitySnapshot]:
        """
        Fetch one team's current state

        The team list is only loaded when the team has no game on the
        scoreboard.

        Args:
            name: Team name as typed by a user
            games: Already fetched scoreboard; fetched when omitted
            load_teams: Source of the team list; defaults to fetch_teams

        Returns:
            Snapshot of the team and its current game, or None if no team
            matches the name

        Raises:
            UpstreamUnavailable: on network, HTTP or parse failure
        """
        if games is None:
            games = self.fetch_scoreboard()
        snapshot = resolve_team(name, games, [])
        if snapshot is not None:
            return snapshot
        return resolve_team(name, games, (load_teams or self.fetch_teams)())

    def _get_json(self, url: str) -> Dict[str, Any]:
        """GET a URL and decode its JSON body"""
        try:
            logger.debug(f"Fetching {url}")
            with self._session_lock:
                response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            raise UpstreamUnavailable(str(e)) from e
        except ValueError as e:
            logger.warning(f"Invalid JSON from {url}: {e}")
            raise UpstreamUnavailable(f"Invalid JSON from {url}") from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable(f"Unexpected payload type from {url}")
        return data


def parse_team(team: Dict[str, Any], score: Optional[str] = None,
               home_away: Optional[str] = None) -> TeamLine:
    """Build a TeamLine from an ESPN team object"""
    return TeamLine(
        team_id=str(team.get('id', '')),
        display_name=team.get('displayName', ''),
        short_name=team.get('shortDisplayName', ''),
        name=team.get('name', ''),
        location=team.get('location', ''),
        abbreviation=team.get('abbreviation', ''),
        score=score,
        home_away=home_away
    )


def parse_event(event: Dict[str, Any]) -> Optional[GameSnapshot]:
    """
    Parse a scoreboard event into a GameSnapshot

    Returns None for events that are not a two-team competition.
    """
    competitions = event.get('competitions') or []
    if not competitions:
        return None
    competition = competitions[0]
    competitors = competition.get('competitors') or []
    if len(competitors) != 2:
        return None

    lines = [
        parse_team(c.get('team', {}), score=c.get('score'), home_away=c.get('homeAway'))
        for c in competitors
    ]
    home, away = lines
    if away.home_away == 'home':
        home, away = away, home

    status = event.get('status') or competition.get('status') or {}
    status_type = status.get('type', {})

    venue = None
    venue_data = competition.get('venue')
    if venue_data:
        venue = venue_data.get('fullName')
        address = venue_data.get('address') or {}
        place = ", ".join(p for p in (address.get('city'), address.get('state')) if p)
        if venue and place:
            venue = f"{venue} ({place})"

    broadcasts = tuple(
        name
        for broadcast in competition.get('broadcasts') or []
        for name in broadcast.get('names') or []
    )

    odds = None
    odds_list = competition.get('odds') or []
    if odds_list:
        line = odds_list[0]
        details = line.get('details')
        over_under = line.get('overUnder')
        if details and over_under is not None:
            odds = f"{details} (O/U: {over_under})"
        elif details:
            odds = details

    return GameSnapshot(
        game_id=str(event.get('id', '')),
        name=event.get('name') or f"{away.display_name} at {home.display_name}",
        home=home,
        away=away,
        status=STATUS_STATES.get(status_type.get('state'), GameStatus.UNKNOWN),
        detail=status_type.get('shortDetail') or status_type.get('detail', ''),
        start_time=parse_api_timestamp(event.get('date')),
        venue=venue,
        broadcasts=broadcasts,
        odds=odds
    )


def team_matches(team: TeamLine, name: str) -> bool:
    """Case-insensitive match of a user-supplied name against a team"""
    wanted = normalize_entity(name)
    return any(normalize_entity(alias) == wanted for alias in team.aliases())


def resolve_team(
    name: str,
    games: Iterable[GameSnapshot],
    teams: Iterable[TeamLine]
) -> Optional[EntitySnapshot]:
    """
    Find a team by name, preferring its current game on the scoreboard

    Args:
        name: Team name as typed by a user
        games: Current scoreboard
        teams: League team list, searched when the team has no game

    Returns:
        EntitySnapshot, or None if nothing matches
    """
    entity = normalize_entity(name)
    for game in games:
        for team in game.competitors():
            if team_matches(team, entity):
                return EntitySnapshot(entity=entity, team=team, game=game)

    for team in teams:
        if team_matches(team, entity):
            return EntitySnapshot(entity=entity, team=team, game=None)

    return None
