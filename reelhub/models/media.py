"""Media domain models: candidate sources, probe results and resolution payloads."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ContentKind(str, Enum):
    """Kind of content a provider serves."""

    VIDEO = "video"
    AUDIOBOOK = "audiobook"


class QualityTier(str, Enum):
    """Resolution tier assigned by the probe engine."""

    UHD_4K = "4K"
    QHD_2K = "2K"
    FHD_1080P = "1080p"
    HD_720P = "720p"
    SD_480P = "480p"
    SD = "SD"
    UNKNOWN = "unknown"


class ContentIdentity(BaseModel):
    """Stable identity of a title for storage-key purposes.

    Video identities carry ``provider_key`` + ``item_id``; audiobook identities
    carry ``album_id`` only.
    """

    model_config = ConfigDict(frozen=True)

    kind: ContentKind = ContentKind.VIDEO
    provider_key: str | None = None
    item_id: str | None = None
    album_id: str | None = None

    @classmethod
    def video(cls, provider_key: str, item_id: str) -> "ContentIdentity":
        return cls(kind=ContentKind.VIDEO, provider_key=provider_key, item_id=item_id)

    @classmethod
    def audiobook(cls, album_id: str) -> "ContentIdentity":
        return cls(kind=ContentKind.AUDIOBOOK, album_id=str(album_id))

    def __str__(self) -> str:
        if self.kind == ContentKind.AUDIOBOOK:
            return f"audiobook:{self.album_id}"
        return f"{self.provider_key}:{self.item_id}"


class CandidateSource(BaseModel):
    """One provider's offering of a requested title. Immutable once fetched."""

    model_config = ConfigDict(frozen=True)

    provider_key: str
    item_id: str
    title: str
    year: str = ""
    poster_url: str = ""
    episode_urls: tuple[str, ...] = ()
    provider_display_name: str = ""
    kind: ContentKind = ContentKind.VIDEO
    is_adult: bool = False
    description: str | None = None
    type_name: str | None = None

    @property
    def total_episodes(self) -> int:
        return len(self.episode_urls)

    @property
    def identity(self) -> ContentIdentity:
        if self.kind == ContentKind.AUDIOBOOK:
            return ContentIdentity.audiobook(self.item_id)
        return ContentIdentity.video(self.provider_key, self.item_id)

    def sample_url(self) -> str | None:
        """Episode URL used for probing.

        Second episode when available, since first episodes are more often
        cold-cached or truncated previews upstream.
        """
        if not self.episode_urls:
            return None
        if len(self.episode_urls) > 1:
            return self.episode_urls[1]
        return self.episode_urls[0]

    def matches(self, provider_key: str | None, item_id: str | None) -> bool:
        return self.provider_key == provider_key and self.item_id == item_id


class ProbeResult(BaseModel):
    """Network measurement of one candidate's sample stream."""

    quality: QualityTier = QualityTier.UNKNOWN
    throughput_kbps: float | None = Field(default=None, ge=0)
    latency_ms: int | None = Field(default=None, ge=0)
    failed: bool = False

    @classmethod
    def failure(cls) -> "ProbeResult":
        return cls(failed=True)

    @property
    def load_speed(self) -> str:
        """Human-readable throughput, e.g. ``"512.0 KB/s"`` or ``"2.0 MB/s"``."""
        if self.throughput_kbps is None:
            return "unknown"
        if self.throughput_kbps >= 1024:
            return f"{self.throughput_kbps / 1024:.1f} MB/s"
        return f"{self.throughput_kbps:.1f} KB/s"


class ScoredCandidate(BaseModel):
    """Candidate + probe + composite score. ``score`` is None for an unscored fallback."""

    source: CandidateSource
    probe: ProbeResult
    score: float | None = None


class ResolveRequest(BaseModel):
    """Caller-facing resolution request.

    One of: ``provider_key`` + ``item_id`` (optionally with ``title`` to search
    alternatives), ``title`` (+ ``year``/``episode_kind``), or ``album_id``.
    ``episode`` is 1-based and overrides the stored episode index.
    """

    provider_key: str | None = None
    item_id: str | None = None
    title: str | None = None
    year: str | None = None
    episode_kind: str | None = None  # "tv" | "movie"
    album_id: str | None = None
    episode: int | None = Field(default=None, ge=1)
    force_repick: bool = False

    @model_validator(mode="after")
    def _check_shape(self) -> "ResolveRequest":
        has_explicit = bool(self.provider_key and self.item_id)
        if not (has_explicit or self.title or self.album_id):
            raise ValueError("request needs provider_key+item_id, title, or album_id")
        if self.episode_kind not in (None, "tv", "movie"):
            raise ValueError("episode_kind must be 'tv' or 'movie'")
        return self

    @property
    def is_audiobook(self) -> bool:
        return bool(self.album_id)

    @property
    def explicit_identity(self) -> bool:
        return bool(self.provider_key and self.item_id)


class ResolveResult(BaseModel):
    """Outcome of a resolution: what to play and where to resume."""

    identity: ContentIdentity
    episode_url: str
    episode_index: int  # 1-based
    total_episodes: int
    resume_seconds: float = 0.0
    source: CandidateSource
    warnings: list[str] = Field(default_factory=list)
    # Every matching source, for manual switching
    candidates: list[CandidateSource] = Field(default_factory=list)
