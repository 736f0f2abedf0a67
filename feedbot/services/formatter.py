"""Message formatting for replies and scheduled updates"""
import hashlib
from typing import Iterable, List, Mapping, Optional

from ..storage.models import EntitySnapshot, GameSnapshot, GameStatus

HELP_TEMPLATE = """🎉 Welcome to Football Feed! 🏈

Here are some commands you can use:
- "nfl scores" 📊: Get the current NFL scores.
- "team [team name]" 🏈: Get information about a specific team.
- "follow [team names] [minutes]" 🏈: Receive updates for specific teams at your chosen interval (comma-separated teams, default {default_cadence} minutes, minimum {min_cadence}).
- "finish updates" 🚫: Stop receiving updates.
- "game score [team]" 🏟️: Get the score of a game involving a specific team.
- "venue [team]" 🏟️: Get the venue of a game involving a specific team.
- "TV [team]" 📺: Get the broadcast information of a game involving a specific team.
- "odds [team]" 🎲: Get the odds of a game involving a specific team.
- "set favorite [team]" ⭐: Set your favorite team to get quick updates.
- "my team" 🏈: Get updates about your favorite team.
- "help" 📖: Display this help message.

Enjoy and stay tuned for NFL updates! 🏈"""


def format_help(default_cadence: int, min_cadence: int) -> str:
    return HELP_TEMPLATE.format(default_cadence=default_cadence, min_cadence=min_cadence)


def format_game_summary(game: GameSnapshot) -> str:
    """One-line score summary, e.g. 'Kansas City Chiefs vs New York Giants: 21 - 14 (Q3 4:12)'"""
    home, away = game.home, game.away
    if game.status == GameStatus.SCHEDULED:
        line = f"{away.display_name} at {home.display_name}"
    else:
        line = (
            f"{home.display_name} vs {away.display_name}: "
            f"{home.score or 0} - {away.score or 0}"
        )
    if game.detail:
        line += f" ({game.detail})"
    return line


def format_scoreboard(games: Iterable[GameSnapshot]) -> str:
    lines = [format_game_summary(game) for game in games]
    if not lines:
        return "No NFL games on the scoreboard right now."
    return "\n".join(lines)


def format_venue(game: GameSnapshot) -> str:
    return f"Venue: {game.venue or 'unknown'}"


def format_broadcasts(game: GameSnapshot) -> str:
    if not game.broadcasts:
        return "Broadcasts: none listed"
    return f"Broadcasts: {', '.join(game.broadcasts)}"


def format_odds(game: GameSnapshot) -> str:
    if not game.odds:
        return "Odds: not available"
    return f"Odds: {game.odds}"


def format_team(snapshot: EntitySnapshot) -> str:
    """Team overview for the 'team' and 'my team' commands"""
    team = snapshot.team
    lines = [f"{team.display_name} ({team.abbreviation})" if team.abbreviation else team.display_name]
    if snapshot.game is not None:
        lines.append(format_game_summary(snapshot.game))
        if snapshot.game.venue:
            lines.append(format_venue(snapshot.game))
    else:
        lines.append("No game on the current scoreboard.")
    return "\n".join(lines)


def render_update(
    entities: Iterable[str],
    snapshots: Mapping[str, Optional[EntitySnapshot]]
) -> str:
    """
    Render a scheduled update for one subscriber

    Args:
        entities: The subscriber's watched entities
        snapshots: Fetched results by entity; an entity mapped to None is
            unknown upstream, and an entity missing from the mapping failed
            to fetch this tick and is left out

    Returns:
        Update text; lines are ordered by entity so the same data always
        renders identically
    """
    lines = ["🏈 Score update"]
    for entity in sorted(entities):
        if entity not in snapshots:
            continue
        snapshot = snapshots[entity]
        if snapshot is None:
            lines.append(f"No data for {entity}.")
        elif snapshot.game is None:
            lines.append(f"{snapshot.display_name}: no game on the current scoreboard.")
        else:
            lines.append(format_game_summary(snapshot.game))
    return "\n".join(lines)


def payload_hash(payload: str) -> str:
    """Content digest used for duplicate suppression"""
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


MAX_MESSAGE_LENGTH = 2000


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """Split text into chunks of at most `limit` characters, breaking on newlines where possible"""
    chunks = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks
