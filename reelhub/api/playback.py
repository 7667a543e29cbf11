"""WebSocket endpoint driving one playback session per connection.

Protocol (JSON text frames):

- client ``{"type": "start", "request": {...ResolveRequest}}`` first; the server
  answers ``{"type": "loaded", ...}`` with the episode URL and resume position;
- client player events ``{"type": "ready" | "play" | "pause" | "time_update" |
  "ended" | "error" | "volume_change" | "rate_change" | "visibility_hidden" |
  "unload", ...}`` are fed to the session's event channel;
- client controls ``next``, ``previous``, ``goto`` (``episode``, 1-based),
  ``switch_source`` (``provider_key``, ``item_id``) and ``toggle_favorite``;
- server ``{"type": "command", "action": ..., ...}`` for the player, and
  ``{"type": "error", "error": code, "detail": ...}`` on failures.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from reelhub.core.errors import ReelhubError
from reelhub.models.media import ResolveRequest
from reelhub.models.session import PlayerCommand, PlayerEvent, PlayerEventType
from reelhub.services.app_services import Services
from reelhub.services.session_state_machine import PlaybackSession, SessionEventChannel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

_PLAYER_EVENTS = {event_type.value for event_type in PlayerEventType}


def _user_from(websocket: WebSocket) -> str | None:
    authorization = websocket.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return websocket.query_params.get("user") or None


def _loaded_message(session: PlaybackSession, url: str | None) -> dict[str, Any]:
    return {
        "type": "loaded",
        "session_id": session.id,
        "state": session.state.value,
        "key": session.key,
        "episode_url": url,
        "episode": session.episode,
        "total_episodes": session.total_episodes,
        "resume_seconds": session.pending_resume or 0.0,
        "warnings": session.warnings,
    }


async def _send_commands(websocket: WebSocket, session: PlaybackSession) -> None:
    while True:
        command: PlayerCommand = await session.commands.get()
        await websocket.send_json({"type": "command", **command.model_dump(exclude_none=True)})


async def _handle_control(
    websocket: WebSocket, session: PlaybackSession, message: dict[str, Any]
) -> None:
    kind = message.get("type")
    if kind == "next":
        url = await session.next_episode()
    elif kind == "previous":
        url = await session.previous_episode()
    elif kind == "goto":
        url = await session.goto_episode(int(message.get("episode", 0)))
    elif kind == "switch_source":
        url = await session.switch_source(
            str(message.get("provider_key", "")), str(message.get("item_id", ""))
        )
    elif kind == "toggle_favorite":
        favorited = await session.toggle_favorite()
        await websocket.send_json({"type": "favorite", "favorited": favorited})
        return
    else:
        await websocket.send_json(
            {"type": "error", "error": "unknown_message", "detail": f"Unknown type {kind!r}"}
        )
        return
    if url is not None:
        await websocket.send_json(_loaded_message(session, url))


@router.websocket("/session")
async def playback_session(websocket: WebSocket):
    """Run one playback session for the lifetime of the connection."""
    services: Services = websocket.app.state.services
    await websocket.accept()
    session = services.new_session(_user_from(websocket))
    channel = SessionEventChannel()
    consumer = asyncio.create_task(session.consume(channel))
    sender = asyncio.create_task(_send_commands(websocket, session))
    logger.info(f"Playback session {session.id} opened for {session.user or 'guest'}")

    try:
        while True:
            message = await websocket.receive_json()
            kind = message.get("type") if isinstance(message, dict) else None
            try:
                if kind == "start":
                    request = ResolveRequest.model_validate(message.get("request") or {})
                    url = await session.start(request)
                    await websocket.send_json(_loaded_message(session, url))
                elif kind in _PLAYER_EVENTS:
                    await channel.send(PlayerEvent.model_validate(message))
                    if kind == PlayerEventType.UNLOAD.value:
                        break
                else:
                    await _handle_control(websocket, session, message)
            except ReelhubError as e:
                await websocket.send_json({"type": "error", "error": e.code, "detail": str(e)})
            except (ValidationError, ValueError) as e:
                await websocket.send_json(
                    {"type": "error", "error": "invalid_message", "detail": str(e)}
                )
    except WebSocketDisconnect:
        logger.info(f"Playback session {session.id} disconnected")
        if not channel.closed:
            await channel.send(PlayerEvent.unload())
    finally:
        channel.close()
        await consumer
        sender.cancel()
        await session.drain()
        logger.info(f"Playback session {session.id} closed")
