"""Turns raw message text into a CommandIntent"""
import re
from typing import List, Optional, Tuple

from ..storage.models import CommandIntent, IntentKind

MINUTES_PATTERN = re.compile(r'^-?\d+$')

# Longest prefixes first so 'game score' wins over shorter keywords
PREFIX_COMMANDS = (
    ("set favorite ", IntentKind.SET_FAVORITE),
    ("game score ", IntentKind.GAME_SCORE),
    ("follow ", IntentKind.SUBSCRIBE),
    ("venue ", IntentKind.VENUE),
    ("team ", IntentKind.TEAM),
    ("odds ", IntentKind.ODDS),
    ("tv ", IntentKind.BROADCAST),
)

EXACT_COMMANDS = {
    "start": IntentKind.HELP,
    "help": IntentKind.HELP,
    "nfl scores": IntentKind.SCORES,
    "scores": IntentKind.SCORES,
    "my team": IntentKind.MY_TEAM,
    "finish updates": IntentKind.UNSUBSCRIBE,
    "stop updates": IntentKind.UNSUBSCRIBE,
    "unfollow": IntentKind.UNSUBSCRIBE,
}


def parse_command(text: str, subscriber_id: str) -> CommandIntent:
    """
    Parse a message into a structured intent

    Args:
        text: Message body as typed by the user
        subscriber_id: Address of the sender

    Returns:
        CommandIntent; unrecognized text yields IntentKind.UNKNOWN
    """
    message = ' '.join(text.split()).lower()

    kind = EXACT_COMMANDS.get(message)
    if kind is not None:
        return CommandIntent(kind=kind, subscriber_id=subscriber_id)

    for prefix, kind in PREFIX_COMMANDS:
        if message.startswith(prefix):
            argument = message[len(prefix):].strip()
            if kind == IntentKind.SUBSCRIBE:
                entities, minutes = parse_follow_arguments(argument)
                return CommandIntent(
                    kind=kind,
                    subscriber_id=subscriber_id,
                    entities=entities,
                    cadence_minutes=minutes,
                    argument=argument
                )
            return CommandIntent(kind=kind, subscriber_id=subscriber_id, argument=argument)

    return CommandIntent(kind=IntentKind.UNKNOWN, subscriber_id=subscriber_id, argument=message)


def parse_follow_arguments(argument: str) -> Tuple[List[str], Optional[int]]:
    """
    Split 'chiefs, new york giants 15' into teams and an optional cadence

    Teams are comma-separated; without a comma the whole argument is one
    team, which the command service may split further. A trailing integer is
    the cadence in minutes.
    """
    minutes = None
    tokens = argument.split()
    if tokens and MINUTES_PATTERN.match(tokens[-1]):
        minutes = int(tokens[-1])
        argument = ' '.join(tokens[:-1])

    if ',' in argument:
        teams = [part.strip() for part in argument.split(',')]
    else:
        teams = [argument]
    return [team for team in teams if team], minutes
