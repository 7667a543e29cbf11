"""REST API routes for Reelhub."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel

from reelhub.core.errors import NoCandidatesFound
from reelhub.models.admin_config import AdminConfig
from reelhub.models.media import CandidateSource, ContentKind, ResolveRequest, ResolveResult
from reelhub.models.records import Favorite, PlayRecord, SkipConfig, UserSettings
from reelhub.services.aggregator import SearchGroup, group_results
from reelhub.services.app_services import Services
from reelhub.storage.keys import parse_key, validate_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["reelhub"])

MANIFEST_MEDIA_TYPE = "application/vnd.apple.mpegurl"


# Dependencies
def get_services(request: Request) -> Services:
    """Service container built in the application lifespan."""
    return request.app.state.services


def get_current_user(
    authorization: str | None = Header(default=None),
    user: str | None = Query(default=None),
) -> str | None:
    """Acting user from ``Authorization: Bearer <user>`` or the ``user`` query parameter."""
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    return user or None


def require_user(user: str | None = Depends(get_current_user)) -> str:
    if not user:
        raise HTTPException(status_code=401, detail="Not signed in")
    return user


# Request/Response Models
class PlayRecordWrite(BaseModel):
    key: str
    record: PlayRecord


class FavoriteWrite(BaseModel):
    key: str
    favorite: Favorite


class SkipConfigWrite(BaseModel):
    key: str
    config: SkipConfig


class KeywordWrite(BaseModel):
    keyword: str


class Credentials(BaseModel):
    username: str
    password: str


class PasswordChange(BaseModel):
    password: str


class GroupedSearchResponse(BaseModel):
    regular: list[SearchGroup]
    adult: list[SearchGroup]


async def _cache_for_site_interval(response: Response, services: Services) -> None:
    seconds = await services.config.cache_time()
    response.headers["Cache-Control"] = f"public, max-age={seconds}, s-maxage={seconds}"


# Search and resolution
@router.get("/search")
async def search(
    response: Response,
    q: str = Query(min_length=1),
    include_adult: bool = False,
    kind: ContentKind | None = None,
    user: str | None = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, list[CandidateSource]]:
    """Search every visible provider; adult results are kept separate."""
    results = await services.aggregator.search(
        q, user=user, include_adult=include_adult, kind=kind
    )
    if user:
        await services.broadcaster.broadcast_search_history_changed(user)
    await _cache_for_site_interval(response, services)
    return results.model_dump()


@router.get("/search/grouped", response_model=GroupedSearchResponse)
async def search_grouped(
    response: Response,
    q: str = Query(min_length=1),
    include_adult: bool = False,
    user: str | None = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> GroupedSearchResponse:
    """Search results grouped by title, year and movie/series kind."""
    results = await services.aggregator.search(q, user=user, include_adult=include_adult)
    await _cache_for_site_interval(response, services)
    return GroupedSearchResponse(
        regular=group_results(results.regular, q),
        adult=group_results(results.adult, q),
    )


@router.get("/detail", response_model=CandidateSource)
async def detail(
    source: str,
    id: str,
    response: Response,
    user: str | None = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> CandidateSource:
    """Full detail (with episode list) for one provider item."""
    validate_token(source, "source")
    validate_token(id, "id")
    result = await services.aggregator.detail(source, id, user)
    if result is None:
        raise NoCandidatesFound(f"{source}:{id} not found")
    await _cache_for_site_interval(response, services)
    return result


@router.post("/resolve", response_model=ResolveResult)
async def resolve(
    request: ResolveRequest,
    user: str | None = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> ResolveResult:
    """Pick a source, episode and resume position for a play request."""
    return await services.resolver.resolve(request, user)


@router.get("/proxy/manifest")
async def proxy_manifest(
    url: str = Query(min_length=1), services: Services = Depends(get_services)
) -> Response:
    """Fetch a manifest through the stream pipeline (ad filter, absolute URIs)."""
    response, text = await services.pipeline.fetch_manifest(url)
    if not response.ok:
        raise HTTPException(status_code=502, detail=f"Upstream returned {response.status}")
    return Response(content=text, media_type=MANIFEST_MEDIA_TYPE)


# Play records
@router.get("/playrecords")
async def get_play_records(
    key: str | None = None,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    """One record by ``key`` (null when absent), or every record keyed by storage key."""
    if key is not None:
        return await services.store.get_play_record(user, key)
    return await services.store.get_all_play_records(user)


@router.post("/playrecords")
async def save_play_record(
    body: PlayRecordWrite,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    parse_key(body.key)
    await services.store.set_play_record(user, body.key, body.record)
    await services.broadcaster.broadcast_play_record_updated(user, body.key)
    return {"success": True}


@router.delete("/playrecords")
async def delete_play_records(
    key: str | None = None,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    """Delete one record, or all of them when no ``key`` is given."""
    keys = [key] if key is not None else list(await services.store.get_all_play_records(user))
    for k in keys:
        await services.store.delete_play_record(user, k)
        await services.broadcaster.broadcast_play_record_deleted(user, k)
    return {"success": True}


# Favorites
@router.get("/favorites")
async def get_favorites(
    key: str | None = None,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    if key is not None:
        return await services.store.get_favorite(user, key)
    return await services.store.get_all_favorites(user)


@router.post("/favorites")
async def save_favorite(
    body: FavoriteWrite,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    parse_key(body.key)
    await services.store.set_favorite(user, body.key, body.favorite)
    await services.broadcaster.broadcast_favorite_changed(user, body.key, True)
    return {"success": True}


@router.delete("/favorites")
async def delete_favorites(
    key: str | None = None,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    keys = [key] if key is not None else list(await services.store.get_all_favorites(user))
    for k in keys:
        await services.store.delete_favorite(user, k)
        await services.broadcaster.broadcast_favorite_changed(user, k, False)
    return {"success": True}


# Skip configs
@router.get("/skipconfigs")
async def get_skip_configs(
    key: str | None = None,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    if key is not None:
        return await services.store.get_skip_config(user, key)
    return await services.store.get_all_skip_configs(user)


@router.post("/skipconfigs")
async def save_skip_config(
    body: SkipConfigWrite,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    parse_key(body.key)
    await services.store.set_skip_config(user, body.key, body.config)
    await services.broadcaster.broadcast_skip_config_changed(user, body.key)
    return {"success": True}


@router.delete("/skipconfigs")
async def delete_skip_configs(
    key: str | None = None,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    keys = [key] if key is not None else list(await services.store.get_all_skip_configs(user))
    for k in keys:
        await services.store.delete_skip_config(user, k)
        await services.broadcaster.broadcast_skip_config_changed(user, k, deleted=True)
    return {"success": True}


# Search history
@router.get("/searchhistory")
async def get_search_history(
    user: str = Depends(require_user), services: Services = Depends(get_services)
) -> list[str]:
    return await services.store.get_search_history(user)


@router.post("/searchhistory")
async def add_search_history(
    body: KeywordWrite,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    keyword = body.keyword.strip()
    if not keyword:
        raise HTTPException(status_code=400, detail="Keyword must not be empty")
    await services.store.add_search_history(user, keyword)
    await services.broadcaster.broadcast_search_history_changed(user)
    return {"success": True}


@router.delete("/searchhistory")
async def delete_search_history(
    keyword: str | None = None,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    """Delete one keyword, or clear the history when none is given."""
    await services.store.delete_search_history(user, keyword)
    await services.broadcaster.broadcast_search_history_changed(user)
    return {"success": True}


# User settings
@router.get("/user/settings")
async def get_user_settings(
    user: str = Depends(require_user), services: Services = Depends(get_services)
) -> dict[str, Any]:
    """Settings with defaults filled in; client-defined keys included."""
    settings = await services.store.get_user_settings(user)
    return settings.model_dump()


@router.put("/user/settings")
async def replace_user_settings(
    settings: UserSettings,
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    await services.store.set_user_settings(user, settings)
    await services.broadcaster.broadcast_settings_changed(user)
    return {"success": True}


@router.patch("/user/settings")
async def update_user_settings(
    changes: dict[str, Any],
    user: str = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict:
    """Partial update: only the provided, non-null fields change."""
    await services.store.update_user_settings(user, changes)
    await services.broadcaster.broadcast_settings_changed(user)
    return {"success": True}


# Users
@router.get("/users")
async def list_users(services: Services = Depends(get_services)) -> list[str]:
    return await services.store.get_all_users()


@router.post("/users")
async def register_user(body: Credentials, services: Services = Depends(get_services)) -> dict:
    """Register a user. An existing username keeps its password."""
    existed = await services.store.check_user_exist(body.username)
    await services.store.register_user(body.username, body.password)
    return {"success": True, "created": not existed}


@router.post("/users/verify")
async def verify_user(body: Credentials, services: Services = Depends(get_services)) -> dict:
    return {"ok": await services.store.verify_user(body.username, body.password)}


@router.get("/users/{username}")
async def check_user(username: str, services: Services = Depends(get_services)) -> dict:
    return {"exists": await services.store.check_user_exist(username)}


@router.put("/users/{username}/password")
async def change_password(
    username: str, body: PasswordChange, services: Services = Depends(get_services)
) -> dict:
    await services.store.change_password(username, body.password)
    return {"success": True}


@router.delete("/users/{username}")
async def delete_user(username: str, services: Services = Depends(get_services)) -> dict:
    """Remove a user together with everything they own."""
    await services.store.delete_user(username)
    return {"success": True}


# Admin config
@router.get("/admin/config")
async def get_admin_config(services: Services = Depends(get_services)) -> AdminConfig | None:
    """The persisted admin config document (null when none has been stored)."""
    return await services.store.get_admin_config()


@router.put("/admin/config")
async def set_admin_config(
    config: AdminConfig, services: Services = Depends(get_services)
) -> dict:
    await services.store.set_admin_config(config)
    await services.config.reload()
    return {"success": True}
