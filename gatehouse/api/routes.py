"""
FastAPI routes for Discord login, sessions and bot lookups.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from gatehouse.api.cookies import SESSION_COOKIE, CookiePolicy
from gatehouse.api.errors import ApiError
from gatehouse.core.errors import ConfigurationError
from gatehouse.dependencies import (
    get_access_token_service,
    get_bot_directory_service,
    get_cookie_policy,
    get_discord_oauth_client,
    get_guild_membership_service,
    get_oauth_login_controller,
    get_session_authority,
    get_user_directory,
)
from gatehouse.models.oauth import DiscordGuild
from gatehouse.models.records import UserRecord
from gatehouse.schemas import (
    BotIdentityResponse,
    GuildInfoResponse,
    GuildListResponse,
    InviteResponse,
    ManagedGuild,
    MeResponse,
    RevalidateGuildResponse,
    SelectGuildRequest,
    SelectGuildResponse,
    StatusResponse,
)
from gatehouse.services.sessions import SessionStatus

router = APIRouter()
logger = logging.getLogger(__name__)


async def get_current_user(
    request: Request,
    sessions: Annotated[Any, Depends(get_session_authority)],
    users: Annotated[Any, Depends(get_user_directory)],
) -> UserRecord:
    """Resolve the session cookie to a user or fail with 401."""
    raw_token = request.cookies.get(SESSION_COOKIE)
    if not raw_token:
        raise ApiError(HTTPStatus.UNAUTHORIZED, "unauthorized")

    lookup = await sessions.validate_session(raw_token)
    if lookup.status is SessionStatus.EXPIRED:
        raise ApiError(HTTPStatus.UNAUTHORIZED, "session_expired")
    if not lookup.active:
        raise ApiError(HTTPStatus.UNAUTHORIZED, "unauthorized")

    user = await users.get_user(lookup.session.user_id)
    if user is None:
        raise ApiError(HTTPStatus.UNAUTHORIZED, "unauthorized")
    return user


CurrentUser = Annotated[UserRecord, Depends(get_current_user)]


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> StatusResponse:
    """Simple health endpoint for monitoring."""
    return StatusResponse()


@router.get("/auth/discord/login")
async def start_discord_login(
    controller: Annotated[Any, Depends(get_oauth_login_controller)],
    cookie_policy: Annotated[CookiePolicy, Depends(get_cookie_policy)],
    redirect: Optional[str] = Query(
        default=None,
        description="Front-end path to return to after a successful login.",
    ),
) -> RedirectResponse:
    """Start the PKCE flow and send the browser to Discord."""
    login = controller.begin_login(redirect)
    response = RedirectResponse(
        login.authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
    )
    cookie_policy.set_handshake(response, login.handshake)
    return response


@router.get("/auth/discord/callback")
async def complete_discord_login(
    request: Request,
    controller: Annotated[Any, Depends(get_oauth_login_controller)],
    cookie_policy: Annotated[CookiePolicy, Depends(get_cookie_policy)],
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
) -> RedirectResponse:
    """Exchange the authorization code, issue a session and redirect to the front-end."""
    outcome = await controller.complete_login(
        code=code, state=state, cookies=request.cookies
    )
    response = RedirectResponse(outcome.location, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    cookie_policy.clear(response, outcome.clear_cookies)
    if outcome.succeeded:
        cookie_policy.set_session(response, outcome.session_token, outcome.session_max_age)
    return response


@router.get("/auth/me", status_code=HTTPStatus.OK)
async def read_current_user(
    user: CurrentUser,
    users: Annotated[Any, Depends(get_user_directory)],
) -> MeResponse:
    tenant = await users.get_tenant_for_user(user.discord_user_id)
    selected = tenant.selected_guild if tenant else None
    return MeResponse(
        id=user.id,
        discord_user_id=user.discord_user_id,
        username=user.username,
        email=user.email,
        avatar=user.avatar,
        is_in_guild=bool(user.is_in_guild),
        needs_invite=bool(user.needs_invite),
        tenant_id=tenant.id if tenant else None,
        selected_guild_id=selected.guild_id if selected else None,
        selected_guild_name=selected.guild_name if selected else None,
        has_selected_guild=selected is not None,
    )


@router.post("/auth/logout", status_code=HTTPStatus.OK)
async def logout(
    request: Request,
    sessions: Annotated[Any, Depends(get_session_authority)],
    cookie_policy: Annotated[CookiePolicy, Depends(get_cookie_policy)],
) -> JSONResponse:
    """Revoke the current session; succeeds whether or not one exists."""
    raw_token = request.cookies.get(SESSION_COOKIE)
    if raw_token:
        await sessions.delete_session(raw_token)
    response = JSONResponse(StatusResponse().model_dump())
    cookie_policy.clear(response, [SESSION_COOKIE])
    return response


@router.get("/auth/discord/invite", status_code=HTTPStatus.OK)
async def community_invite(
    user: CurrentUser,
    membership: Annotated[Any, Depends(get_guild_membership_service)],
) -> InviteResponse:
    status = await membership.invite(user)
    return InviteResponse(in_guild=status.in_guild, invite_url=status.invite_url)


@router.post("/auth/discord/revalidate-guild", status_code=HTTPStatus.OK)
async def revalidate_guild(
    user: CurrentUser,
    membership: Annotated[Any, Depends(get_guild_membership_service)],
) -> RevalidateGuildResponse:
    try:
        is_member = await membership.revalidate(user)
    except ConfigurationError as exc:
        logger.warning("Guild revalidation requested without guild integration")
        raise ApiError(HTTPStatus.BAD_REQUEST, "guild_not_configured") from exc
    return RevalidateGuildResponse(is_in_guild=is_member)


@router.get("/bot/identity", status_code=HTTPStatus.OK)
async def bot_identity(
    user: CurrentUser,
    users: Annotated[Any, Depends(get_user_directory)],
    directory: Annotated[Any, Depends(get_bot_directory_service)],
) -> BotIdentityResponse:
    """Name and avatar of the bot provisioned for the user's tenant."""
    tenant = await users.get_tenant_for_user(user.discord_user_id)
    if tenant is None:
        return BotIdentityResponse()
    identity = await directory.fetch_bot_identity(tenant.id)
    if identity is None:
        return BotIdentityResponse()
    return BotIdentityResponse(name=identity.name, avatar=identity.avatar)


@router.get("/guilds/{guild_id}/info", status_code=HTTPStatus.OK)
async def guild_info(
    guild_id: str,
    user: CurrentUser,
    users: Annotated[Any, Depends(get_user_directory)],
    directory: Annotated[Any, Depends(get_bot_directory_service)],
) -> GuildInfoResponse:
    tenant = await users.get_tenant_for_user(user.discord_user_id)
    if tenant is None or all(guild.guild_id != guild_id for guild in tenant.guilds):
        raise ApiError(HTTPStatus.FORBIDDEN, "forbidden")

    info = await directory.fetch_guild_info(guild_id, tenant.id)
    if info is None:
        raise ApiError(HTTPStatus.NOT_FOUND, "guild_unavailable")
    return GuildInfoResponse(guild_id=guild_id, **info.model_dump())


async def _manageable_guilds(
    user: UserRecord, access_tokens: Any, oauth_client: Any
) -> List[DiscordGuild]:
    access_token = await access_tokens.ensure_valid_access_token(user)
    guilds = await oauth_client.fetch_user_guilds(access_token)
    return [guild for guild in guilds if guild.can_manage]


@router.get("/discord/guilds", status_code=HTTPStatus.OK)
async def list_discord_guilds(
    user: CurrentUser,
    access_tokens: Annotated[Any, Depends(get_access_token_service)],
    oauth_client: Annotated[Any, Depends(get_discord_oauth_client)],
) -> GuildListResponse:
    """Guilds the user owns or administers, using a freshly validated token."""
    guilds = await _manageable_guilds(user, access_tokens, oauth_client)
    return GuildListResponse(
        guilds=[
            ManagedGuild(
                id=guild.id,
                name=guild.name,
                icon=guild.icon_url(),
                owner=guild.owner,
                permissions=guild.permissions,
            )
            for guild in guilds
        ]
    )


@router.post("/select-guild", status_code=HTTPStatus.OK)
async def select_guild(
    payload: SelectGuildRequest,
    user: CurrentUser,
    access_tokens: Annotated[Any, Depends(get_access_token_service)],
    oauth_client: Annotated[Any, Depends(get_discord_oauth_client)],
) -> SelectGuildResponse:
    guild_id = payload.guild_id.strip()
    if not guild_id.isdigit():
        raise ApiError(HTTPStatus.BAD_REQUEST, "guild_id_invalid")

    guilds = await _manageable_guilds(user, access_tokens, oauth_client)
    chosen = next((guild for guild in guilds if guild.id == guild_id), None)
    if chosen is None:
        raise ApiError(HTTPStatus.FORBIDDEN, "guild_not_allowed")
    return SelectGuildResponse(
        guild_id=chosen.id, guild_name=chosen.name, guild_icon=chosen.icon_url()
    )


__all__ = ["get_current_user", "router"]
