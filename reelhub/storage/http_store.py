"""HTTP-shaped progress store: a client of another reelhub instance's REST API.

GET reads, POST upserts, DELETE removes; the acting user travels in the
``Authorization: Bearer <user>`` header.
"""

import logging
from functools import partial
from typing import Any

import httpx

from reelhub.core.errors import StorageError, handle_errors
from reelhub.models.admin_config import AdminConfig
from reelhub.models.records import Favorite, PlayRecord, SkipConfig, UserSettings
from reelhub.storage.base import ProgressStore

logger = logging.getLogger(__name__)

_http_errors = partial(handle_errors, error_types=(httpx.HTTPError,), wrap_as=StorageError)


class HttpStore(ProgressStore):
    """ProgressStore that forwards every call to a remote REST endpoint."""

    save_interval = 10.0

    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        if client is None:
            if not base_url:
                raise ValueError("HttpStore needs a client or a base URL")
            client = httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout))
        self._client = client

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _auth(username: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {username}"}

    async def _get(self, path: str, username: str | None = None, **params: Any) -> Any:
        headers = self._auth(username) if username else None
        response = await self._client.get(path, params=params or None, headers=headers)
        response.raise_for_status()
        return response.json()

    async def _post(self, path: str, payload: Any, username: str | None = None) -> Any:
        headers = self._auth(username) if username else None
        response = await self._client.post(path, json=payload, headers=headers)
        response.raise_for_status()
        return response.json()

    async def _send(
        self, method: str, path: str, username: str | None = None, payload: Any = None, **params
    ) -> None:
        headers = self._auth(username) if username else None
        response = await self._client.request(
            method, path, params=params or None, json=payload, headers=headers
        )
        response.raise_for_status()

    # --- Play records ---

    @_http_errors(default_message="Remote play record read failed")
    async def get_play_record(self, username: str, key: str) -> PlayRecord | None:
        data = await self._get("/api/playrecords", username, key=key)
        return PlayRecord.model_validate(data) if data else None

    @_http_errors(default_message="Remote play record write failed")
    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None:
        await self._post(
            "/api/playrecords", {"key": key, "record": record.model_dump(mode="json")}, username
        )

    @_http_errors(default_message="Remote play records read failed")
    async def get_all_play_records(self, username: str) -> dict[str, PlayRecord]:
        data = await self._get("/api/playrecords", username) or {}
        return {key: PlayRecord.model_validate(value) for key, value in data.items()}

    @_http_errors(default_message="Remote play record delete failed")
    async def delete_play_record(self, username: str, key: str) -> None:
        await self._send("DELETE", "/api/playrecords", username, key=key)

    # --- Favorites ---

    @_http_errors(default_message="Remote favorite read failed")
    async def get_favorite(self, username: str, key: str) -> Favorite | None:
        data = await self._get("/api/favorites", username, key=key)
        return Favorite.model_validate(data) if data else None

    @_http_errors(default_message="Remote favorite write failed")
    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None:
        await self._post(
            "/api/favorites", {"key": key, "favorite": favorite.model_dump(mode="json")}, username
        )

    @_http_errors(default_message="Remote favorites read failed")
    async def get_all_favorites(self, username: str) -> dict[str, Favorite]:
        data = await self._get("/api/favorites", username) or {}
        return {key: Favorite.model_validate(value) for key, value in data.items()}

    @_http_errors(default_message="Remote favorite delete failed")
    async def delete_favorite(self, username: str, key: str) -> None:
        await self._send("DELETE", "/api/favorites", username, key=key)

    # --- Skip configs ---

    @_http_errors(default_message="Remote skip config read failed")
    async def get_skip_config(self, username: str, key: str) -> SkipConfig | None:
        data = await self._get("/api/skipconfigs", username, key=key)
        return SkipConfig.model_validate(data) if data else None

    @_http_errors(default_message="Remote skip config write failed")
    async def set_skip_config(self, username: str, key: str, config: SkipConfig) -> None:
        await self._post(
            "/api/skipconfigs", {"key": key, "config": config.model_dump(mode="json")}, username
        )

    @_http_errors(default_message="Remote skip configs read failed")
    async def get_all_skip_configs(self, username: str) -> dict[str, SkipConfig]:
        data = await self._get("/api/skipconfigs", username) or {}
        return {key: SkipConfig.model_validate(value) for key, value in data.items()}

    @_http_errors(default_message="Remote skip config delete failed")
    async def delete_skip_config(self, username: str, key: str) -> None:
        await self._send("DELETE", "/api/skipconfigs", username, key=key)

    # --- Users ---

    @_http_errors(default_message="Remote user registration failed")
    async def register_user(self, username: str, password: str) -> None:
        await self._post("/api/users", {"username": username, "password": password})

    @_http_errors(default_message="Remote user verification failed")
    async def verify_user(self, username: str, password: str) -> bool:
        data = await self._post("/api/users/verify", {"username": username, "password": password})
        return bool(data.get("ok"))

    @_http_errors(default_message="Remote user lookup failed")
    async def check_user_exist(self, username: str) -> bool:
        data = await self._get(f"/api/users/{username}")
        return bool(data.get("exists"))

    @_http_errors(default_message="Remote password change failed")
    async def change_password(self, username: str, new_password: str) -> None:
        await self._send(
            "PUT", f"/api/users/{username}/password", payload={"password": new_password}
        )

    @_http_errors(default_message="Remote user delete failed")
    async def delete_user(self, username: str) -> None:
        await self._send("DELETE", f"/api/users/{username}")

    @_http_errors(default_message="Remote user list failed")
    async def get_all_users(self) -> list[str]:
        return list(await self._get("/api/users"))

    # --- Settings ---

    @_http_errors(default_message="Remote settings read failed")
    async def get_user_settings(self, username: str) -> UserSettings:
        data = await self._get("/api/user/settings", username)
        return UserSettings.model_validate(data or {})

    @_http_errors(default_message="Remote settings write failed")
    async def set_user_settings(self, username: str, settings: UserSettings) -> None:
        await self._send("PUT", "/api/user/settings", username, payload=settings.model_dump())

    @_http_errors(default_message="Remote settings update failed")
    async def update_user_settings(self, username: str, changes: dict[str, Any]) -> None:
        payload = {key: value for key, value in changes.items() if value is not None}
        await self._send("PATCH", "/api/user/settings", username, payload=payload)

    # --- Search history ---

    @_http_errors(default_message="Remote search history read failed")
    async def get_search_history(self, username: str) -> list[str]:
        return list(await self._get("/api/searchhistory", username) or [])

    @_http_errors(default_message="Remote search history write failed")
    async def add_search_history(self, username: str, keyword: str) -> None:
        await self._post("/api/searchhistory", {"keyword": keyword}, username)

    @_http_errors(default_message="Remote search history delete failed")
    async def delete_search_history(self, username: str, keyword: str | None = None) -> None:
        if keyword is None:
            await self._send("DELETE", "/api/searchhistory", username)
        else:
            await self._send("DELETE", "/api/searchhistory", username, keyword=keyword)

    # --- Admin config ---

    @_http_errors(default_message="Remote admin config read failed")
    async def get_admin_config(self) -> AdminConfig | None:
        data = await self._get("/api/admin/config")
        return AdminConfig.model_validate(data) if data else None

    @_http_errors(default_message="Remote admin config write failed")
    async def set_admin_config(self, config: AdminConfig) -> None:
        await self._send("PUT", "/api/admin/config", payload=config.model_dump(mode="json"))
