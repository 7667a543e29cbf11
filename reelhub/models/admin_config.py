"""Admin configuration document.

Stored as one opaque blob by the progress store; assembled by ConfigService
from the source config file and the stored copy.
"""

from typing import Literal

from pydantic import BaseModel, Field


class SiteConfig(BaseModel):
    site_name: str = "Reelhub"
    announcement: str = ""
    search_downstream_max_page: int = 5
    site_interface_cache_time: int = 7200
    image_proxy: str = ""
    douban_proxy: str = ""


class UserEntry(BaseModel):
    username: str
    role: Literal["owner", "admin", "user"] = "user"
    banned: bool = False


class UserConfig(BaseModel):
    allow_register: bool = False
    users: list[UserEntry] = Field(default_factory=list)


class SourceEntry(BaseModel):
    """One upstream provider site."""

    key: str
    name: str
    api: str
    detail: str | None = None
    origin: Literal["config", "custom"] = "config"
    disabled: bool = False
    is_adult: bool = False
    type: str | None = None  # None means video, for older configs


class CustomCategory(BaseModel):
    name: str | None = None
    type: Literal["movie", "tv"]
    query: str
    origin: Literal["config", "custom"] = "config"
    disabled: bool = False


class AdminConfig(BaseModel):
    site_config: SiteConfig = Field(default_factory=SiteConfig)
    user_config: UserConfig = Field(default_factory=UserConfig)
    source_config: list[SourceEntry] = Field(default_factory=list)
    custom_categories: list[CustomCategory] = Field(default_factory=list)
