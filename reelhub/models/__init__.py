"""Data models for Reelhub."""

from reelhub.models.admin_config import AdminConfig, SourceEntry
from reelhub.models.media import (
    CandidateSource,
    ContentIdentity,
    ContentKind,
    ProbeResult,
    QualityTier,
    ResolveRequest,
    ResolveResult,
    ScoredCandidate,
)
from reelhub.models.records import Favorite, PlayRecord, SkipConfig, SkipSegment, UserSettings
from reelhub.models.session import PlayerCommand, PlayerEvent, PlayerEventType, SessionState
from reelhub.models.user_data import (
    AdminConfigRow,
    FavoriteRow,
    PlayRecordRow,
    SearchHistoryRow,
    SkipConfigRow,
    UserRow,
    UserSettingsRow,
)

__all__ = [
    "AdminConfig",
    "SourceEntry",
    "CandidateSource",
    "ContentIdentity",
    "ContentKind",
    "ProbeResult",
    "QualityTier",
    "ResolveRequest",
    "ResolveResult",
    "ScoredCandidate",
    "Favorite",
    "PlayRecord",
    "SkipConfig",
    "SkipSegment",
    "UserSettings",
    "PlayerCommand",
    "PlayerEvent",
    "PlayerEventType",
    "SessionState",
    "AdminConfigRow",
    "FavoriteRow",
    "PlayRecordRow",
    "SearchHistoryRow",
    "SkipConfigRow",
    "UserRow",
    "UserSettingsRow",
]
