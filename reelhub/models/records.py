"""Per-user records persisted by the progress store."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from reelhub.models.media import ContentKind


class PlayRecord(BaseModel):
    """Resume state for one content identity. ``index`` is 1-based; ``save_time`` is epoch ms."""

    title: str
    source_name: str = ""
    year: str = ""
    cover: str = ""
    index: int = Field(default=1, ge=1)
    total_episodes: int = Field(default=1, ge=0)
    play_time: int = Field(default=0, ge=0)
    total_time: int = Field(default=0, ge=0)
    save_time: int = 0
    search_title: str = ""
    kind: ContentKind = ContentKind.VIDEO
    provider_key: str | None = None
    item_id: str | None = None
    album_id: str | None = None
    intro: str | None = None


class Favorite(BaseModel):
    """A favorited title. Presence in the store means favorited."""

    title: str
    source_name: str = ""
    year: str = ""
    cover: str = ""
    total_episodes: int = Field(default=1, ge=0)
    save_time: int = 0
    search_title: str = ""
    kind: ContentKind = ContentKind.VIDEO
    provider_key: str | None = None
    item_id: str | None = None
    album_id: str | None = None
    intro: str | None = None


class SkipSegment(BaseModel):
    """Opening/ending span to skip, in seconds."""

    start: float = Field(ge=0)
    end: float = Field(ge=0)
    type: Literal["opening", "ending"]
    label: str | None = None


class SkipConfig(BaseModel):
    """Skip segments for one content identity."""

    provider_key: str
    item_id: str
    title: str = ""
    segments: list[SkipSegment] = Field(default_factory=list)
    updated_time: int = 0


class UserSettings(BaseModel):
    """Per-user preferences. Unknown keys are kept so clients can store their own."""

    model_config = ConfigDict(extra="allow")

    filter_adult_content: bool = True
    theme: Literal["light", "dark", "auto"] = "auto"
    language: str = "zh-CN"
    auto_play: bool = True
    video_quality: str = "auto"
    audiobook_playback_speed: float = 1.0
