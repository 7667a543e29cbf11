"""Domain-specific event broadcasting layer.

Provides semantic event methods that wrap WebSocket broadcasting,
improving code clarity and reducing coupling to WebSocket implementation.
"""

from reelhub.api.websocket import ConnectionManager
from reelhub.models.session import SessionState


class EventBroadcaster:
    """Domain-specific WebSocket event broadcasting."""

    def __init__(self, ws_manager: ConnectionManager):
        self._ws = ws_manager

    # --- Stored data events ---

    async def broadcast_play_record_updated(self, username: str, key: str):
        """Broadcast a saved play record."""
        await self._ws.broadcast_data_update(username, "playrecords", key)

    async def broadcast_play_record_deleted(self, username: str, key: str):
        """Broadcast a removed play record."""
        await self._ws.broadcast_data_update(username, "playrecords", key, action="deleted")

    async def broadcast_favorite_changed(self, username: str, key: str, favorited: bool):
        """Broadcast a favorite being set or cleared."""
        action = "updated" if favorited else "deleted"
        await self._ws.broadcast_data_update(username, "favorites", key, action=action)

    async def broadcast_skip_config_changed(self, username: str, key: str, deleted: bool = False):
        """Broadcast a skip config change."""
        action = "deleted" if deleted else "updated"
        await self._ws.broadcast_data_update(username, "skipconfigs", key, action=action)

    async def broadcast_search_history_changed(self, username: str):
        """Broadcast a search history change."""
        await self._ws.broadcast_data_update(username, "searchhistory")

    async def broadcast_settings_changed(self, username: str):
        """Broadcast a user settings change."""
        await self._ws.broadcast_data_update(username, "settings")

    # --- Session events ---

    async def broadcast_session_state_changed(
        self,
        session_id: str,
        username: str,
        new_state: SessionState,
        key: str | None = None,
        episode: int | None = None,
        total_episodes: int | None = None,
    ):
        """Broadcast a playback session state transition."""
        await self._ws.broadcast_session_update(
            session_id,
            username,
            new_state.value,
            key=key,
            episode=episode,
            total_episodes=total_episodes,
        )

    async def broadcast_session_failed(self, session_id: str, username: str, error_message: str):
        """Broadcast a terminal session failure."""
        await self._ws.broadcast_session_update(
            session_id, username, SessionState.FAILED.value, error=error_message
        )
