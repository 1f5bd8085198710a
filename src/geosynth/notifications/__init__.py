"""Matching finalized messages to users' interest zones."""

from .matcher import (
    LoggingNotifier,
    Notifier,
    SpatialMatcher,
    deduplicate_matches,
    match_and_notify,
    match_message_to_zone,
    match_messages,
)
from .models import (
    DEFAULT_RADIUS_M,
    MAX_RADIUS_M,
    MIN_RADIUS_M,
    InterestZone,
    MessageSnapshot,
    NotificationMatch,
    clamp_radius,
    parse_zone,
)
from .storage import DuckDBMatchStore, MatchStore

__all__ = [
    "DEFAULT_RADIUS_M",
    "DuckDBMatchStore",
    "InterestZone",
    "LoggingNotifier",
    "MAX_RADIUS_M",
    "MIN_RADIUS_M",
    "MatchStore",
    "MessageSnapshot",
    "NotificationMatch",
    "Notifier",
    "SpatialMatcher",
    "clamp_radius",
    "deduplicate_matches",
    "match_and_notify",
    "match_message_to_zone",
    "match_messages",
    "parse_zone",
]
