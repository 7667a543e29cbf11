"""Playback session states, player events and player commands."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel


class SessionState(str, Enum):
    """Playback session lifecycle."""

    IDLE = "idle"
    RESOLVING = "resolving"
    PROBING = "probing"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"  # last episode finished
    FAILED = "failed"  # terminal error for this attempt


class PlayerEventType(str, Enum):
    READY = "ready"
    PLAY = "play"
    PAUSE = "pause"
    TIME_UPDATE = "time_update"
    ENDED = "ended"
    ERROR = "error"
    VOLUME_CHANGE = "volume_change"
    RATE_CHANGE = "rate_change"
    VISIBILITY_HIDDEN = "visibility_hidden"
    UNLOAD = "unload"


class PlayerEvent(BaseModel):
    """One message from the media transport into the session."""

    type: PlayerEventType
    current_time: float | None = None
    duration: float | None = None
    volume: float | None = None
    rate: float | None = None
    message: str | None = None

    @classmethod
    def ready(cls, duration: float) -> "PlayerEvent":
        return cls(type=PlayerEventType.READY, duration=duration)

    @classmethod
    def play(cls) -> "PlayerEvent":
        return cls(type=PlayerEventType.PLAY)

    @classmethod
    def pause(cls) -> "PlayerEvent":
        return cls(type=PlayerEventType.PAUSE)

    @classmethod
    def time_update(cls, current_time: float, duration: float) -> "PlayerEvent":
        return cls(type=PlayerEventType.TIME_UPDATE, current_time=current_time, duration=duration)

    @classmethod
    def ended(cls) -> "PlayerEvent":
        return cls(type=PlayerEventType.ENDED)

    @classmethod
    def error(cls, message: str = "") -> "PlayerEvent":
        return cls(type=PlayerEventType.ERROR, message=message)

    @classmethod
    def volume_change(cls, volume: float) -> "PlayerEvent":
        return cls(type=PlayerEventType.VOLUME_CHANGE, volume=volume)

    @classmethod
    def rate_change(cls, rate: float) -> "PlayerEvent":
        return cls(type=PlayerEventType.RATE_CHANGE, rate=rate)

    @classmethod
    def visibility_hidden(cls) -> "PlayerEvent":
        return cls(type=PlayerEventType.VISIBILITY_HIDDEN)

    @classmethod
    def unload(cls) -> "PlayerEvent":
        return cls(type=PlayerEventType.UNLOAD)


class PlayerCommand(BaseModel):
    """Instruction from the session back to the media transport."""

    action: Literal["seek", "set_rate", "set_volume", "load"]
    value: float | None = None
    url: str | None = None
