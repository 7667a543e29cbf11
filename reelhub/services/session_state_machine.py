"""Playback session state machine.

One ``PlaybackSession`` per open player. It owns the selected source, the
current episode and the pending resume position, decides every transition
from the player events it is fed, and is the only caller that writes
progress to the store.
"""

import asyncio
import logging
import math
import time
import uuid
from collections.abc import Callable, Coroutine
from typing import Any

from reelhub.core.errors import InvalidTransition, ReelhubError, StorageError
from reelhub.models.media import CandidateSource, ContentIdentity, ContentKind, ResolveRequest
from reelhub.models.records import Favorite, PlayRecord
from reelhub.models.session import PlayerCommand, PlayerEvent, PlayerEventType, SessionState
from reelhub.services.event_broadcaster import EventBroadcaster
from reelhub.services.resolver import Resolver
from reelhub.storage.base import ProgressStore, now_ms
from reelhub.storage.keys import make_key

logger = logging.getLogger(__name__)

# Progress below this many seconds is never saved (pre-roll, failed loads)
MIN_SAVE_SECONDS = 1.0
# A resume point this close to the end restarts near the end instead
END_GUARD_SECONDS = 2.0
END_BACKOFF_SECONDS = 5.0
VOLUME_EPSILON = 0.01


class SessionEventChannel:
    """Queue carrying player events from the media transport into a session."""

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue[PlayerEvent | None] = asyncio.Queue(maxsize)
        self.closed = False

    async def send(self, event: PlayerEvent) -> None:
        if self.closed:
            raise InvalidTransition("Event channel is closed")
        await self._queue.put(event)

    def send_nowait(self, event: PlayerEvent) -> None:
        if self.closed:
            raise InvalidTransition("Event channel is closed")
        self._queue.put_nowait(event)

    async def receive(self) -> PlayerEvent | None:
        """Next event, or None once the channel is closed and drained."""
        return await self._queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> PlayerEvent:
        event = await self.receive()
        if event is None:
            raise StopAsyncIteration
        return event


class PlaybackSession:
    """Tracks source, episode and resume position for one player.

    Args:
        resolver: Picks the initial source and builds episode URLs
        store: Progress store; its ``save_interval`` throttles periodic saves
        user: Signed-in username, or None for a guest (nothing is persisted)
        broadcaster: Optional WebSocket broadcaster for state and data updates
        save_interval: Override for the store's periodic save interval
        auto_advance_delay: Seconds between an episode ending and the next loading
        clock: Monotonic clock used for save throttling
    """

    VALID_TRANSITIONS = {
        SessionState.IDLE: {SessionState.RESOLVING, SessionState.FAILED},
        SessionState.RESOLVING: {
            SessionState.PROBING,
            SessionState.READY,
            SessionState.FAILED,
        },
        SessionState.PROBING: {SessionState.READY, SessionState.FAILED},
        SessionState.READY: {
            SessionState.PLAYING,
            SessionState.PAUSED,
            SessionState.ENDED,
            SessionState.RESOLVING,
            SessionState.FAILED,
        },
        SessionState.PLAYING: {
            SessionState.PAUSED,
            SessionState.READY,
            SessionState.ENDED,
            SessionState.RESOLVING,
            SessionState.FAILED,
        },
        SessionState.PAUSED: {
            SessionState.PLAYING,
            SessionState.READY,
            SessionState.ENDED,
            SessionState.RESOLVING,
            SessionState.FAILED,
        },
        SessionState.ENDED: {
            SessionState.READY,
            SessionState.PLAYING,
            SessionState.RESOLVING,
        },
        # A failed attempt can be retried with a new resolution or source
        SessionState.FAILED: {SessionState.RESOLVING, SessionState.READY},
    }

    def __init__(
        self,
        resolver: Resolver,
        store: ProgressStore,
        user: str | None = None,
        broadcaster: EventBroadcaster | None = None,
        save_interval: float | None = None,
        auto_advance_delay: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.id = uuid.uuid4().hex
        self.user = user
        self._resolver = resolver
        self._store = store
        self._broadcaster = broadcaster
        self.save_interval = store.save_interval if save_interval is None else save_interval
        self.auto_advance_delay = auto_advance_delay
        self._clock = clock

        self.state = SessionState.IDLE
        self.source: CandidateSource | None = None
        self.candidates: list[CandidateSource] = []
        self.episode_index = 0
        self.episode_url: str | None = None
        self.pending_resume: float | None = None
        self.search_title = ""
        self.warnings: list[str] = []
        self.error_message: str | None = None

        self.current_time = 0.0
        self.duration = 0.0
        self.volume: float | None = None
        self.playback_rate = 1.0

        self.commands: asyncio.Queue[PlayerCommand] = asyncio.Queue()
        self._last_save = self._clock()
        self._tasks: set[asyncio.Task] = set()

    # --- Derived state ---

    @property
    def identity(self) -> ContentIdentity | None:
        return self.source.identity if self.source else None

    @property
    def key(self) -> str | None:
        return make_key(self.source.identity) if self.source else None

    @property
    def is_audiobook(self) -> bool:
        return self.source is not None and self.source.kind == ContentKind.AUDIOBOOK

    @property
    def total_episodes(self) -> int:
        return self.source.total_episodes if self.source else 0

    @property
    def episode(self) -> int:
        """Current episode, 1-based."""
        return self.episode_index + 1

    def has_next(self) -> bool:
        return self.episode_index + 1 < self.total_episodes

    # --- Transitions ---

    def can_transition(self, from_state: SessionState, to_state: SessionState) -> bool:
        """Validate if state transition is allowed.

        Args:
            from_state: Current session state
            to_state: Desired session state

        Returns:
            True if transition is valid, False otherwise
        """
        if from_state == to_state:
            return True
        return to_state in self.VALID_TRANSITIONS.get(from_state, set())

    async def _transition(self, to_state: SessionState, error_message: str | None = None) -> bool:
        from_state = self.state
        if not self.can_transition(from_state, to_state):
            logger.warning(
                f"Invalid state transition for session {self.id}: "
                f"{from_state.value} -> {to_state.value}"
            )
            return False

        self.state = to_state
        if to_state == SessionState.FAILED:
            self.error_message = error_message

        # Re-entering READY means a new episode or source was loaded
        if from_state != to_state or to_state == SessionState.READY:
            logger.info(
                f"Session {self.id} state transition: {from_state.value} -> {to_state.value}"
            )
            await self._broadcast_state(to_state, error_message)
        return True

    async def _broadcast_state(self, state: SessionState, error_message: str | None) -> None:
        if self._broadcaster is None or not self.user:
            return
        try:
            if state == SessionState.FAILED:
                await self._broadcaster.broadcast_session_failed(
                    self.id, self.user, error_message or "Playback failed"
                )
            else:
                await self._broadcaster.broadcast_session_state_changed(
                    self.id,
                    self.user,
                    state,
                    key=self.key,
                    episode=self.episode if self.source else None,
                    total_episodes=self.total_episodes if self.source else None,
                )
        except Exception as e:
            logger.warning(f"Failed to broadcast session {self.id} state: {e}")

    def _require_source(self) -> CandidateSource:
        if self.source is None:
            raise InvalidTransition(f"Session {self.id} has no source yet")
        return self.source

    def _reset_position(self) -> None:
        self.current_time = 0.0
        self.duration = 0.0
        self._last_save = self._clock()

    # --- Entry ---

    async def start(self, request: ResolveRequest) -> str:
        """Resolve ``request`` and load the chosen episode.

        Returns:
            The playable URL of the selected episode

        Raises:
            InvalidIdentity: Malformed identity in the request
            NoCandidatesFound: Nothing playable was found
            EmptyEpisodeList: The chosen source has no episodes
        """
        if not await self._transition(SessionState.RESOLVING):
            raise InvalidTransition(f"Cannot start session {self.id} from {self.state.value}")

        try:
            result = await self._resolver.resolve(
                request, self.user, on_probe=lambda: self._transition(SessionState.PROBING)
            )
        except ReelhubError as e:
            await self._transition(SessionState.FAILED, str(e))
            raise

        self.source = result.source
        self.candidates = list(result.candidates)
        self.episode_index = result.episode_index - 1
        self.episode_url = result.episode_url
        self.pending_resume = result.resume_seconds or None
        self.search_title = request.title or result.source.title
        self.warnings = list(result.warnings)
        self._reset_position()

        if self.is_audiobook:
            self.playback_rate = await self._stored_playback_rate()

        await self._transition(SessionState.READY)
        logger.info(
            f"Session {self.id} ready: {result.identity} episode {result.episode_index}/"
            f"{result.total_episodes}, resume at {result.resume_seconds}s"
        )
        return result.episode_url

    async def _stored_playback_rate(self) -> float:
        if not self.user:
            return self.playback_rate
        try:
            settings = await self._store.get_user_settings(self.user)
        except ReelhubError as e:
            logger.warning(f"Could not read settings for {self.user}: {e}")
            return self.playback_rate
        return settings.audiobook_playback_speed

    # --- Player events ---

    async def dispatch(self, event: PlayerEvent) -> list[PlayerCommand]:
        """Apply one player event; returns commands for the media transport."""
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug(f"Session {self.id}: ignoring {event.type.value}")
            return []
        return await handler(self, event)

    async def consume(self, channel: SessionEventChannel) -> None:
        """Dispatch events from ``channel`` until it closes or an unload arrives."""
        async for event in channel:
            for command in await self.dispatch(event):
                self.commands.put_nowait(command)
            if event.type == PlayerEventType.UNLOAD:
                break

    async def _on_ready(self, event: PlayerEvent) -> list[PlayerCommand]:
        if event.duration is not None:
            self.duration = event.duration
        commands: list[PlayerCommand] = []

        if self.pending_resume and self.pending_resume > 0:
            target = self.pending_resume
            if self.duration and target >= self.duration - END_GUARD_SECONDS:
                target = max(0.0, self.duration - END_BACKOFF_SECONDS)
            commands.append(PlayerCommand(action="seek", value=target))
            self.current_time = target
        self.pending_resume = None

        if self.is_audiobook:
            commands.append(PlayerCommand(action="set_rate", value=self.playback_rate))
        if self.volume is not None:
            commands.append(PlayerCommand(action="set_volume", value=self.volume))
        return commands

    async def _on_play(self, event: PlayerEvent) -> list[PlayerCommand]:
        await self._transition(SessionState.PLAYING)
        return []

    async def _on_pause(self, event: PlayerEvent) -> list[PlayerCommand]:
        if await self._transition(SessionState.PAUSED):
            self._spawn(self.save_progress())
        return []

    async def _on_time_update(self, event: PlayerEvent) -> list[PlayerCommand]:
        if event.current_time is not None:
            self.current_time = event.current_time
        if event.duration is not None:
            self.duration = event.duration
        if self.state != SessionState.PLAYING:
            return []
        now = self._clock()
        if now - self._last_save >= self.save_interval:
            self._last_save = now
            self._spawn(self.save_progress())
        return []

    async def _on_ended(self, event: PlayerEvent) -> list[PlayerCommand]:
        await self._transition(SessionState.ENDED)
        if self.has_next():
            self._spawn(self._auto_advance(self.episode_index + 1))
        else:
            logger.info(f"Session {self.id}: last episode finished")
        return []

    async def _on_error(self, event: PlayerEvent) -> list[PlayerCommand]:
        if self.current_time > 0:
            logger.info(
                f"Session {self.id}: ignoring player error after playback started: {event.message}"
            )
            return []
        message = event.message or "Playback failed"
        logger.error(f"Session {self.id}: stream error before playback: {message}")
        await self._transition(SessionState.FAILED, message)
        return []

    async def _on_volume_change(self, event: PlayerEvent) -> list[PlayerCommand]:
        if event.volume is not None and (
            self.volume is None or abs(event.volume - self.volume) > VOLUME_EPSILON
        ):
            self.volume = event.volume
        return []

    async def _on_rate_change(self, event: PlayerEvent) -> list[PlayerCommand]:
        rate = event.rate
        if rate is None or not math.isfinite(rate) or rate <= 0:
            return []
        self.playback_rate = rate
        if self.is_audiobook and self.user:
            self._spawn(self._persist_playback_rate(rate))
        return []

    async def _on_teardown(self, event: PlayerEvent) -> list[PlayerCommand]:
        self._spawn(self.save_progress())
        return []

    _handlers = {
        PlayerEventType.READY: _on_ready,
        PlayerEventType.PLAY: _on_play,
        PlayerEventType.PAUSE: _on_pause,
        PlayerEventType.TIME_UPDATE: _on_time_update,
        PlayerEventType.ENDED: _on_ended,
        PlayerEventType.ERROR: _on_error,
        PlayerEventType.VOLUME_CHANGE: _on_volume_change,
        PlayerEventType.RATE_CHANGE: _on_rate_change,
        PlayerEventType.VISIBILITY_HIDDEN: _on_teardown,
        PlayerEventType.UNLOAD: _on_teardown,
    }

    async def _auto_advance(self, target: int) -> None:
        await asyncio.sleep(self.auto_advance_delay)
        if self.state != SessionState.ENDED:
            logger.debug(f"Session {self.id}: auto-advance cancelled in {self.state.value}")
            return
        url = await self.change_episode(target)
        if url is not None:
            self.commands.put_nowait(PlayerCommand(action="load", url=url))

    # --- Navigation ---

    async def change_episode(self, target: int) -> str | None:
        """Load the 0-based episode ``target``.

        Progress is flushed first when navigating while playing. An out-of-range
        target is a no-op.

        Returns:
            The new episode's URL, or None when nothing changed
        """
        source = self._require_source()
        if not 0 <= target < source.total_episodes:
            logger.info(
                f"Session {self.id}: episode {target + 1} out of range "
                f"(1-{source.total_episodes}), ignoring"
            )
            return None

        if self.state == SessionState.PLAYING:
            await self.save_progress()

        url = await self._resolver.episode_url(source, target, self.user)
        self.episode_index = target
        self.episode_url = url
        self.pending_resume = None
        self._reset_position()
        await self._transition(SessionState.READY)
        logger.info(f"Session {self.id}: now at episode {self.episode}/{source.total_episodes}")
        return url

    async def next_episode(self) -> str | None:
        return await self.change_episode(self.episode_index + 1)

    async def previous_episode(self) -> str | None:
        return await self.change_episode(self.episode_index - 1)

    async def goto_episode(self, episode: int) -> str | None:
        """Jump to a 1-based episode number."""
        return await self.change_episode(episode - 1)

    async def switch_source(self, provider_key: str, item_id: str) -> str:
        """Move playback to another provider's copy of the same title.

        The left source's play record is deleted; the episode carries over when
        the new source has it, and so does the position when more than a second
        had been watched. The carried position is stored under the new source.

        Returns:
            The playable URL on the new source

        Raises:
            InvalidIdentity: Malformed provider key or item id
            NoCandidatesFound: The new source is unavailable
        """
        old = self._require_source()
        new = await self._resolver.find_source(provider_key, item_id, self.candidates, self.user)
        if new.identity == old.identity:
            return self.episode_url or ""

        watched = self.current_time
        duration = self.duration
        old_key = make_key(old.identity)

        if self.user:
            try:
                await self._store.delete_play_record(self.user, old_key)
                await self._broadcast_data(
                    "broadcast_play_record_deleted", self.user, old_key
                )
            except ReelhubError as e:
                logger.warning(f"Could not delete play record {old_key}: {e}")

        target = self.episode_index if self.episode_index < new.total_episodes else 0
        keep_position = target == self.episode_index and watched > MIN_SAVE_SECONDS

        url = await self._resolver.episode_url(new, target, self.user)
        if new not in self.candidates:
            self.candidates.append(new)
        self.source = new
        self.episode_index = target
        self.episode_url = url
        self._reset_position()
        if keep_position:
            self.pending_resume = watched
            self.current_time = watched
            self.duration = duration
            await self.save_progress()
        else:
            self.pending_resume = None

        await self._transition(SessionState.READY)
        logger.info(
            f"Session {self.id}: switched {old.identity} -> {new.identity}, "
            f"episode {self.episode}, resume at {self.pending_resume or 0}s"
        )
        return url

    # --- Persistence ---

    def build_record(self) -> PlayRecord:
        source = self._require_source()
        return PlayRecord(
            title=source.title,
            source_name=source.provider_display_name,
            year=source.year,
            cover=source.poster_url,
            index=self.episode,
            total_episodes=source.total_episodes,
            play_time=math.floor(self.current_time),
            total_time=math.floor(self.duration),
            save_time=now_ms(),
            search_title=self.search_title,
            kind=source.kind,
            provider_key=None if self.is_audiobook else source.provider_key,
            item_id=None if self.is_audiobook else source.item_id,
            album_id=source.item_id if self.is_audiobook else None,
            intro=source.description,
        )

    async def save_progress(self) -> bool:
        """Persist the current position; best effort.

        Returns:
            True if a record was written
        """
        if not self.user or self.source is None:
            return False
        if self.current_time < MIN_SAVE_SECONDS or not self.duration:
            return False
        key = self.key
        try:
            await self._store.set_play_record(self.user, key, self.build_record())
        except ReelhubError as e:
            logger.warning(f"Could not save progress for {key}: {e}")
            return False
        logger.debug(f"Session {self.id}: saved {key} at {self.current_time:.0f}s")
        await self._broadcast_data("broadcast_play_record_updated", self.user, key)
        return True

    async def _persist_playback_rate(self, rate: float) -> None:
        try:
            await self._store.update_user_settings(self.user, {"audiobook_playback_speed": rate})
        except ReelhubError as e:
            logger.warning(f"Could not save playback speed for {self.user}: {e}")
            return
        await self._broadcast_data("broadcast_settings_changed", self.user)

    async def _broadcast_data(self, method: str, *args: Any) -> None:
        if self._broadcaster is None:
            return
        try:
            await getattr(self._broadcaster, method)(*args)
        except Exception as e:
            logger.warning(f"Failed to broadcast {method}: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Session {self.id} background task failed: {exc}")

    async def drain(self) -> None:
        """Wait for outstanding background saves and auto-advances."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Favorites ---

    async def is_favorited(self) -> bool:
        """Whether the current title is favorited; read failures count as no."""
        if not self.user or self.source is None:
            return False
        try:
            return await self._store.get_favorite(self.user, self.key) is not None
        except ReelhubError as e:
            logger.warning(f"Could not read favorite {self.key}: {e}")
            return False

    async def toggle_favorite(self) -> bool:
        """Flip the favorite state of the current title.

        Returns:
            The new state (True when now favorited)

        Raises:
            InvalidTransition: No user or no source
            StorageError: The store rejected the write
        """
        source = self._require_source()
        if not self.user:
            raise InvalidTransition("Favorites require a signed-in user")
        key = self.key
        try:
            if await self._store.get_favorite(self.user, key) is not None:
                await self._store.delete_favorite(self.user, key)
                favorited = False
            else:
                favorite = Favorite(
                    title=source.title,
                    source_name=source.provider_display_name,
                    year=source.year,
                    cover=source.poster_url,
                    total_episodes=source.total_episodes,
                    save_time=now_ms(),
                    search_title=self.search_title,
                    kind=source.kind,
                    provider_key=None if self.is_audiobook else source.provider_key,
                    item_id=None if self.is_audiobook else source.item_id,
                    album_id=source.item_id if self.is_audiobook else None,
                    intro=source.description,
                )
                await self._store.set_favorite(self.user, key, favorite)
                favorited = True
        except StorageError:
            raise
        except ReelhubError as e:
            raise StorageError(f"Could not update favorite {key}: {e}") from e

        await self._broadcast_data("broadcast_favorite_changed", self.user, key, favorited)
        return favorited

