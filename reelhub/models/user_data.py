"""SQLModel tables for the relational progress store.

Every per-user table is keyed by ``user_id``; SqlStore deletes dependents
explicitly when a user is removed so the cascade holds regardless of the
SQLite foreign_keys pragma.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserRow(SQLModel, table=True):
    """Registered account. Password handling is hardened outside this layer."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    password: str
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class PlayRecordRow(SQLModel, table=True):
    __tablename__ = "play_records"
    __table_args__ = (UniqueConstraint("user_id", "record_key"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    record_key: str = Field(index=True)

    title: str
    source_name: str = ""
    year: str = ""
    cover_url: str = ""
    episode_index: int = 1  # 1-based
    total_episodes: int = 1
    play_time: int = 0
    total_time: int = 0
    save_time: int = 0  # epoch ms
    search_title: str = ""
    kind: str = "video"
    provider_key: str | None = None
    item_id: str | None = None
    album_id: str | None = None
    intro: str | None = None


class FavoriteRow(SQLModel, table=True):
    __tablename__ = "favorites"
    __table_args__ = (UniqueConstraint("user_id", "favorite_key"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    favorite_key: str = Field(index=True)

    title: str
    source_name: str = ""
    year: str = ""
    cover_url: str = ""
    total_episodes: int = 1
    save_time: int = 0
    search_title: str = ""
    kind: str = "video"
    provider_key: str | None = None
    item_id: str | None = None
    album_id: str | None = None
    intro: str | None = None


class SkipConfigRow(SQLModel, table=True):
    __tablename__ = "skip_configs"
    __table_args__ = (UniqueConstraint("user_id", "config_key"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    config_key: str = Field(index=True)

    provider_key: str
    item_id: str
    title: str = ""
    segments_json: str = "[]"  # JSON list of SkipSegment
    updated_time: int = 0


class UserSettingsRow(SQLModel, table=True):
    __tablename__ = "user_settings"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, unique=True)
    settings_json: str = "{}"  # full UserSettings dump, extra keys included
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class SearchHistoryRow(SQLModel, table=True):
    """One keyword per row; ``id`` order is recency order."""

    __tablename__ = "search_history"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    keyword: str
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class AdminConfigRow(SQLModel, table=True):
    __tablename__ = "admin_configs"

    config_key: str = Field(primary_key=True)
    config_value: str  # JSON document
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
