"""SqlStore behavior beyond the shared store contract."""

from datetime import timezone

from sqlmodel import select

from reelhub.models.records import UserSettings
from reelhub.models.user_data import UserRow, UserSettingsRow, utc_now


def test_timestamps_are_timezone_aware():
    row = UserRow(username="bob", password="pw")

    assert utc_now().tzinfo is timezone.utc
    assert row.created_at.tzinfo is timezone.utc
    assert row.updated_at.tzinfo is timezone.utc


async def test_updates_touch_timestamps(sql_store):
    await sql_store.change_password("alice", "new-secret")
    await sql_store.set_user_settings("alice", UserSettings(theme="dark"))

    async with sql_store._session_factory() as session:
        query = select(UserRow).where(UserRow.username == "alice")
        user = (await session.execute(query)).scalar_one()
        settings_row = (
            await session.execute(select(UserSettingsRow).where(UserSettingsRow.user_id == user.id))
        ).scalar_one()

    assert user.updated_at >= user.created_at
    assert settings_row.updated_at is not None
