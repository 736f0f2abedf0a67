"""Team name normalization"""
from typing import FrozenSet, Iterable


def normalize_entity(name: str) -> str:
    """
    Normalize a team identifier for consistent matching
    
    Collapses whitespace and lowercases, so 'Kansas  City Chiefs' and
    'kansas city chiefs' are the same entity.
    """
    return ' '.join(name.split()).lower()


def normalize_entities(names: Iterable[str]) -> FrozenSet[str]:
    """Normalize and deduplicate a collection of team names, dropping blanks"""
    normalized = (normalize_entity(name) for name in names if name)
    return frozenset(name for name in normalized if name)
