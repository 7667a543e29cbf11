"""Relational progress store on async SQLAlchemy/SQLModel."""

import json
import logging
from collections.abc import Callable
from functools import partial

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlmodel import select

from reelhub.core.errors import StorageError, handle_errors
from reelhub.models.admin_config import AdminConfig
from reelhub.models.records import Favorite, PlayRecord, SkipConfig, SkipSegment, UserSettings
from reelhub.models.user_data import (
    AdminConfigRow,
    FavoriteRow,
    PlayRecordRow,
    SearchHistoryRow,
    SkipConfigRow,
    UserRow,
    UserSettingsRow,
    utc_now,
)
from reelhub.storage.base import SEARCH_HISTORY_LIMIT, ProgressStore, is_stale

logger = logging.getLogger(__name__)

ADMIN_CONFIG_KEY = "main_config"

_db_errors = partial(handle_errors, error_types=(SQLAlchemyError,), wrap_as=StorageError)

# Tables owned by a user, deleted before the user row itself
_USER_OWNED = (PlayRecordRow, FavoriteRow, SkipConfigRow, UserSettingsRow, SearchHistoryRow)


def _record_from_row(row: PlayRecordRow) -> PlayRecord:
    return PlayRecord(
        title=row.title,
        source_name=row.source_name,
        year=row.year,
        cover=row.cover_url,
        index=row.episode_index,
        total_episodes=row.total_episodes,
        play_time=row.play_time,
        total_time=row.total_time,
        save_time=row.save_time,
        search_title=row.search_title,
        kind=row.kind,
        provider_key=row.provider_key,
        item_id=row.item_id,
        album_id=row.album_id,
        intro=row.intro,
    )


def _apply_record(row: PlayRecordRow, record: PlayRecord) -> None:
    row.title = record.title
    row.source_name = record.source_name
    row.year = record.year
    row.cover_url = record.cover
    row.episode_index = record.index
    row.total_episodes = record.total_episodes
    row.play_time = record.play_time
    row.total_time = record.total_time
    row.save_time = record.save_time
    row.search_title = record.search_title
    row.kind = record.kind.value
    row.provider_key = record.provider_key
    row.item_id = record.item_id
    row.album_id = record.album_id
    row.intro = record.intro


def _favorite_from_row(row: FavoriteRow) -> Favorite:
    return Favorite(
        title=row.title,
        source_name=row.source_name,
        year=row.year,
        cover=row.cover_url,
        total_episodes=row.total_episodes,
        save_time=row.save_time,
        search_title=row.search_title,
        kind=row.kind,
        provider_key=row.provider_key,
        item_id=row.item_id,
        album_id=row.album_id,
        intro=row.intro,
    )


def _apply_favorite(row: FavoriteRow, favorite: Favorite) -> None:
    row.title = favorite.title
    row.source_name = favorite.source_name
    row.year = favorite.year
    row.cover_url = favorite.cover
    row.total_episodes = favorite.total_episodes
    row.save_time = favorite.save_time
    row.search_title = favorite.search_title
    row.kind = favorite.kind.value
    row.provider_key = favorite.provider_key
    row.item_id = favorite.item_id
    row.album_id = favorite.album_id
    row.intro = favorite.intro


def _skip_from_row(row: SkipConfigRow) -> SkipConfig:
    segments = [SkipSegment.model_validate(s) for s in json.loads(row.segments_json or "[]")]
    return SkipConfig(
        provider_key=row.provider_key,
        item_id=row.item_id,
        title=row.title,
        segments=segments,
        updated_time=row.updated_time,
    )


class SqlStore(ProgressStore):
    """ProgressStore backed by the SQLModel tables in ``reelhub.models.user_data``."""

    save_interval = 10.0

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        if session_factory is None:
            from reelhub.database import async_session

            session_factory = async_session
        self._session_factory = session_factory
        self._engine = engine

    async def init(self) -> None:
        from reelhub.database import init_db

        await init_db(self._engine)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def _user_id(self, session: AsyncSession, username: str) -> int | None:
        result = await session.execute(select(UserRow.id).where(UserRow.username == username))
        return result.scalar_one_or_none()

    # --- Play records ---

    async def _play_record_row(
        self, session: AsyncSession, username: str, key: str
    ) -> PlayRecordRow | None:
        result = await session.execute(
            select(PlayRecordRow)
            .join(UserRow, UserRow.id == PlayRecordRow.user_id)
            .where(UserRow.username == username, PlayRecordRow.record_key == key)
        )
        return result.scalar_one_or_none()

    @_db_errors(default_message="Failed to load play record")
    async def get_play_record(self, username: str, key: str) -> PlayRecord | None:
        async with self._session_factory() as session:
            row = await self._play_record_row(session, username, key)
            return _record_from_row(row) if row else None

    @_db_errors(default_message="Failed to save play record")
    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            row = await self._play_record_row(session, username, key)
            if row is None:
                row = PlayRecordRow(user_id=user_id, record_key=key, title=record.title)
            elif is_stale(_record_from_row(row), record):
                logger.debug(f"Dropping stale play record {key} for {username}")
                return
            _apply_record(row, record)
            session.add(row)
            await session.commit()

    @_db_errors(default_message="Failed to load play records")
    async def get_all_play_records(self, username: str) -> dict[str, PlayRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PlayRecordRow)
                .join(UserRow, UserRow.id == PlayRecordRow.user_id)
                .where(UserRow.username == username)
            )
            return {row.record_key: _record_from_row(row) for row in result.scalars().all()}

    @_db_errors(default_message="Failed to delete play record")
    async def delete_play_record(self, username: str, key: str) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            await session.execute(
                delete(PlayRecordRow).where(
                    PlayRecordRow.user_id == user_id, PlayRecordRow.record_key == key
                )
            )
            await session.commit()

    # --- Favorites ---

    async def _favorite_row(
        self, session: AsyncSession, username: str, key: str
    ) -> FavoriteRow | None:
        result = await session.execute(
            select(FavoriteRow)
            .join(UserRow, UserRow.id == FavoriteRow.user_id)
            .where(UserRow.username == username, FavoriteRow.favorite_key == key)
        )
        return result.scalar_one_or_none()

    @_db_errors(default_message="Failed to load favorite")
    async def get_favorite(self, username: str, key: str) -> Favorite | None:
        async with self._session_factory() as session:
            row = await self._favorite_row(session, username, key)
            return _favorite_from_row(row) if row else None

    @_db_errors(default_message="Failed to save favorite")
    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            row = await self._favorite_row(session, username, key)
            if row is None:
                row = FavoriteRow(user_id=user_id, favorite_key=key, title=favorite.title)
            _apply_favorite(row, favorite)
            session.add(row)
            await session.commit()

    @_db_errors(default_message="Failed to load favorites")
    async def get_all_favorites(self, username: str) -> dict[str, Favorite]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FavoriteRow)
                .join(UserRow, UserRow.id == FavoriteRow.user_id)
                .where(UserRow.username == username)
            )
            return {row.favorite_key: _favorite_from_row(row) for row in result.scalars().all()}

    @_db_errors(default_message="Failed to delete favorite")
    async def delete_favorite(self, username: str, key: str) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            await session.execute(
                delete(FavoriteRow).where(
                    FavoriteRow.user_id == user_id, FavoriteRow.favorite_key == key
                )
            )
            await session.commit()

    # --- Skip configs ---

    async def _skip_row(
        self, session: AsyncSession, username: str, key: str
    ) -> SkipConfigRow | None:
        result = await session.execute(
            select(SkipConfigRow)
            .join(UserRow, UserRow.id == SkipConfigRow.user_id)
            .where(UserRow.username == username, SkipConfigRow.config_key == key)
        )
        return result.scalar_one_or_none()

    @_db_errors(default_message="Failed to load skip config")
    async def get_skip_config(self, username: str, key: str) -> SkipConfig | None:
        async with self._session_factory() as session:
            row = await self._skip_row(session, username, key)
            return _skip_from_row(row) if row else None

    @_db_errors(default_message="Failed to save skip config")
    async def set_skip_config(self, username: str, key: str, config: SkipConfig) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            row = await self._skip_row(session, username, key)
            if row is None:
                row = SkipConfigRow(
                    user_id=user_id,
                    config_key=key,
                    provider_key=config.provider_key,
                    item_id=config.item_id,
                )
            row.provider_key = config.provider_key
            row.item_id = config.item_id
            row.title = config.title
            row.segments_json = json.dumps([s.model_dump() for s in config.segments])
            row.updated_time = config.updated_time
            session.add(row)
            await session.commit()

    @_db_errors(default_message="Failed to load skip configs")
    async def get_all_skip_configs(self, username: str) -> dict[str, SkipConfig]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SkipConfigRow)
                .join(UserRow, UserRow.id == SkipConfigRow.user_id)
                .where(UserRow.username == username)
            )
            return {row.config_key: _skip_from_row(row) for row in result.scalars().all()}

    @_db_errors(default_message="Failed to delete skip config")
    async def delete_skip_config(self, username: str, key: str) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            await session.execute(
                delete(SkipConfigRow).where(
                    SkipConfigRow.user_id == user_id, SkipConfigRow.config_key == key
                )
            )
            await session.commit()

    # --- Users ---

    @_db_errors(default_message="Failed to register user")
    async def register_user(self, username: str, password: str) -> None:
        async with self._session_factory() as session:
            if await self._user_id(session, username) is not None:
                return
            session.add(UserRow(username=username, password=password))
            await session.commit()
            logger.info(f"Registered user {username}")

    @_db_errors(default_message="Failed to verify user")
    async def verify_user(self, username: str, password: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserRow.password).where(UserRow.username == username)
            )
            stored = result.scalar_one_or_none()
            return stored is not None and stored == password

    @_db_errors(default_message="Failed to look up user")
    async def check_user_exist(self, username: str) -> bool:
        async with self._session_factory() as session:
            return await self._user_id(session, username) is not None

    @_db_errors(default_message="Failed to change password")
    async def change_password(self, username: str, new_password: str) -> None:
        async with self._session_factory() as session:
            result = await session.execute(select(UserRow).where(UserRow.username == username))
            user = result.scalar_one_or_none()
            if user is None:
                return
            user.password = new_password
            user.updated_at = utc_now()
            session.add(user)
            await session.commit()

    @_db_errors(default_message="Failed to delete user")
    async def delete_user(self, username: str) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            for table in _USER_OWNED:
                await session.execute(delete(table).where(table.user_id == user_id))
            await session.execute(delete(UserRow).where(UserRow.id == user_id))
            await session.commit()
            logger.info(f"Deleted user {username} and all owned records")

    @_db_errors(default_message="Failed to list users")
    async def get_all_users(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserRow.username).order_by(UserRow.id))
            return list(result.scalars().all())

    # --- Settings ---

    @_db_errors(default_message="Failed to load user settings")
    async def get_user_settings(self, username: str) -> UserSettings:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserSettingsRow)
                .join(UserRow, UserRow.id == UserSettingsRow.user_id)
                .where(UserRow.username == username)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return UserSettings()
            return UserSettings.model_validate(json.loads(row.settings_json or "{}"))

    @_db_errors(default_message="Failed to save user settings")
    async def set_user_settings(self, username: str, settings: UserSettings) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            result = await session.execute(
                select(UserSettingsRow).where(UserSettingsRow.user_id == user_id)
            )
            row = result.scalar_one_or_none() or UserSettingsRow(user_id=user_id)
            row.settings_json = settings.model_dump_json()
            row.updated_at = utc_now()
            session.add(row)
            await session.commit()

    # --- Search history ---

    @_db_errors(default_message="Failed to load search history")
    async def get_search_history(self, username: str) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SearchHistoryRow.keyword)
                .join(UserRow, UserRow.id == SearchHistoryRow.user_id)
                .where(UserRow.username == username)
                .order_by(SearchHistoryRow.id.desc())
                .limit(SEARCH_HISTORY_LIMIT)
            )
            return list(result.scalars().all())

    @_db_errors(default_message="Failed to add search history")
    async def add_search_history(self, username: str, keyword: str) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            # Delete then insert so the keyword moves to the front
            await session.execute(
                delete(SearchHistoryRow).where(
                    SearchHistoryRow.user_id == user_id, SearchHistoryRow.keyword == keyword
                )
            )
            session.add(SearchHistoryRow(user_id=user_id, keyword=keyword))
            await session.flush()

            overflow = await session.execute(
                select(SearchHistoryRow.id)
                .where(SearchHistoryRow.user_id == user_id)
                .order_by(SearchHistoryRow.id.desc())
                .offset(SEARCH_HISTORY_LIMIT)
            )
            stale_ids = list(overflow.scalars().all())
            if stale_ids:
                await session.execute(
                    delete(SearchHistoryRow).where(SearchHistoryRow.id.in_(stale_ids))
                )
            await session.commit()

    @_db_errors(default_message="Failed to delete search history")
    async def delete_search_history(self, username: str, keyword: str | None = None) -> None:
        async with self._session_factory() as session:
            user_id = await self._user_id(session, username)
            if user_id is None:
                return
            statement = delete(SearchHistoryRow).where(SearchHistoryRow.user_id == user_id)
            if keyword is not None:
                statement = statement.where(SearchHistoryRow.keyword == keyword)
            await session.execute(statement)
            await session.commit()

    # --- Admin config ---

    @_db_errors(default_message="Failed to load admin config")
    async def get_admin_config(self) -> AdminConfig | None:
        async with self._session_factory() as session:
            row = await session.get(AdminConfigRow, ADMIN_CONFIG_KEY)
            if row is None:
                return None
            return AdminConfig.model_validate_json(row.config_value)

    @_db_errors(default_message="Failed to save admin config")
    async def set_admin_config(self, config: AdminConfig) -> None:
        async with self._session_factory() as session:
            row = await session.get(AdminConfigRow, ADMIN_CONFIG_KEY)
            if row is None:
                row = AdminConfigRow(config_key=ADMIN_CONFIG_KEY, config_value="{}")
            row.config_value = config.model_dump_json()
            row.updated_at = utc_now()
            session.add(row)
            await session.commit()
