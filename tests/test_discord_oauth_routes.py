try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from fakes import DiscordStub, InMemoryDatastore
from gatehouse import dependencies
from gatehouse.api.cookies import CookiePolicy
from gatehouse.clients.discord import DiscordBotClient, DiscordOAuthClient
from gatehouse.core.config import DiscordSettings, OAuthSettings
from gatehouse.core.errors import ConfigurationError, UpstreamError
from gatehouse.main import app
from gatehouse.services.bot_directory import BotIdentity, GuildInfo
from gatehouse.services.discord_tokens import AccessTokenService
from gatehouse.services.guild_membership import GuildMembershipService, InviteStatus
from gatehouse.services.oauth_flow import OAuthLoginController
from gatehouse.services.sessions import SessionAuthority
from gatehouse.services.token_cipher import TokenCipherService
from gatehouse.services.users import UserDirectory

pytestmark = pytest.mark.anyio("asyncio")

APP_URL = "https://app.example.com"


class DummyDirectory:
    def __init__(self) -> None:
        self.identity_calls: list[str] = []
        self.guild_calls: list[tuple[str, str]] = []
        self.fail = False

    async def fetch_bot_identity(self, tenant_id: str):
        if self.fail:
            raise UpstreamError("provisioner", 502, "bad gateway")
        self.identity_calls.append(tenant_id)
        return BotIdentity(id="777", name="Tenant Bot", avatar="https://cdn.example/bot.png")

    async def fetch_guild_info(self, guild_id: str, tenant_id: str):
        self.guild_calls.append((guild_id, tenant_id))
        return GuildInfo(name="Home", member_count=12)


class UnconfiguredMembership:
    async def revalidate(self, user):
        raise ConfigurationError("Community guild integration is not configured.")

    async def invite(self, user):
        return InviteStatus(in_guild=False, invite_url="https://discord.gg/static")


@pytest.fixture()
def stack():
    store = InMemoryDatastore()
    stub = DiscordStub()
    discord = DiscordSettings(
        client_id="client",
        client_secret="secret",
        redirect_uri=f"{APP_URL}/api/auth/discord/callback",
        bot_token="bot-token",
        guild_id="999",
    )
    oauth_settings = OAuthSettings()
    transport = httpx.MockTransport(stub)
    users = UserDirectory(store)
    cipher = TokenCipherService(secret="ab" * 32)
    oauth_client = DiscordOAuthClient(discord, oauth_settings, transport=transport)
    sessions = SessionAuthority(store, secret="session-secret")
    membership = GuildMembershipService(DiscordBotClient(discord, transport=transport), users)
    controller = OAuthLoginController(
        oauth_client=oauth_client,
        token_cipher=cipher,
        sessions=sessions,
        users=users,
        membership=membership,
        oauth_settings=oauth_settings,
        app_url=APP_URL,
    )
    directory = DummyDirectory()
    store.seed(
        "tenants",
        {"id": "tenant-1", "owner_id": "42", "guilds": [{"guild_id": "555", "guild_name": "Home"}]},
    )

    overrides = {
        dependencies.get_oauth_login_controller: lambda: controller,
        dependencies.get_session_authority: lambda: sessions,
        dependencies.get_user_directory: lambda: users,
        dependencies.get_guild_membership_service: lambda: membership,
        dependencies.get_bot_directory_service: lambda: directory,
        dependencies.get_cookie_policy: lambda: CookiePolicy(secure=True),
        dependencies.get_discord_oauth_client: lambda: oauth_client,
        dependencies.get_access_token_service: lambda: AccessTokenService(
            users, oauth_client, cipher
        ),
    }
    app.dependency_overrides.update(overrides)

    yield store, stub, sessions, directory

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="https://testserver"
    )


async def _login(client: httpx.AsyncClient, redirect: str = "/settings") -> httpx.Response:
    login = await client.get("/api/auth/discord/login", params={"redirect": redirect})
    state = parse_qs(urlparse(login.headers["location"]).query)["state"][0]
    return await client.get(
        "/api/auth/discord/callback", params={"code": "abc", "state": state}
    )


async def test_health() -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_login_redirects_to_discord_with_handshake_cookies(stack) -> None:
    async with _client() as client:
        response = await client.get("/api/auth/discord/login")

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://discord.com/api/oauth2/authorize")
    set_cookies = response.headers.get_list("set-cookie")
    for name in ("oauth-state", "oauth-verifier", "oauth-redirect"):
        header = next(c for c in set_cookies if c.startswith(f"{name}="))
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "samesite=lax" in header.lower()
        assert "Max-Age=600" in header


async def test_full_login_me_and_logout(stack) -> None:
    store, stub, _, _ = stack

    async with _client() as client:
        callback = await _login(client)

        assert callback.status_code == 307
        assert callback.headers["location"] == f"{APP_URL}/settings"
        assert stub.token_requests[0]["code"] == ["abc"]
        assert "session" in client.cookies
        assert "oauth-state" not in client.cookies

        me = await client.get("/api/auth/me")
        assert me.status_code == 200
        body = me.json()
        assert body["discord_user_id"] == "42"
        assert body["username"] == "ada"
        assert body["is_in_guild"] is True
        assert body["tenant_id"] == "tenant-1"
        assert body["selected_guild_id"] == "555"
        assert body["has_selected_guild"] is True

        logout = await client.post("/api/auth/logout")
        assert logout.status_code == 200
        assert store.tables[SessionAuthority.TABLE] == []

        after = await client.get("/api/auth/me")

    assert after.status_code == 401
    assert after.json() == {"error": "unauthorized"}


async def test_callback_with_forged_state_redirects_to_login(stack) -> None:
    _, stub, _, _ = stack

    async with _client() as client:
        await client.get("/api/auth/discord/login")
        response = await client.get(
            "/api/auth/discord/callback", params={"code": "abc", "state": "forged"}
        )

    assert response.status_code == 307
    assert response.headers["location"] == f"{APP_URL}/login?error=invalid_state"
    assert stub.token_requests == []
    set_cookies = response.headers.get_list("set-cookie")
    assert not any(
        c.startswith("session=") and "Max-Age=0" not in c for c in set_cookies
    )
    for name in ("oauth-state", "oauth-verifier", "oauth-redirect"):
        header = next(c for c in set_cookies if c.startswith(f"{name}="))
        assert "Max-Age=0" in header


async def test_me_requires_session(stack) -> None:
    async with _client() as client:
        response = await client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json() == {"error": "unauthorized"}


async def test_me_reports_expired_session(stack) -> None:
    store, _, sessions, _ = stack
    user = store.seed("users", {"discord_user_id": "42", "username": "ada"})
    token = await sessions.create_session(
        user["id"], datetime.now(timezone.utc) - timedelta(seconds=1)
    )

    async with _client() as client:
        client.cookies.set("session", token)
        response = await client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json() == {"error": "session_expired"}
    assert store.tables[SessionAuthority.TABLE] == []


async def test_logout_without_session_is_idempotent(stack) -> None:
    async with _client() as client:
        response = await client.post("/api/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_bot_identity_and_guild_info(stack) -> None:
    _, _, _, directory = stack

    async with _client() as client:
        await _login(client)
        identity = await client.get("/api/bot/identity")
        guild = await client.get("/api/guilds/555/info")
        foreign = await client.get("/api/guilds/666/info")

    assert identity.json() == {"name": "Tenant Bot", "avatar": "https://cdn.example/bot.png"}
    assert directory.identity_calls == ["tenant-1"]
    assert guild.status_code == 200
    assert guild.json()["name"] == "Home"
    assert guild.json()["member_count"] == 12
    assert directory.guild_calls == [("555", "tenant-1")]
    assert foreign.status_code == 403


async def test_revalidate_guild_without_integration(stack) -> None:
    app.dependency_overrides[dependencies.get_guild_membership_service] = (
        lambda: UnconfiguredMembership()
    )

    async with _client() as client:
        await _login(client)
        response = await client.post("/api/auth/discord/revalidate-guild")
        invite = await client.get("/api/auth/discord/invite")

    assert response.status_code == 400
    assert response.json() == {"error": "guild_not_configured"}
    assert invite.json() == {"in_guild": False, "invite_url": "https://discord.gg/static"}


async def test_upstream_failures_become_server_errors(stack) -> None:
    _, _, _, directory = stack
    directory.fail = True

    async with _client() as client:
        await _login(client)
        response = await client.get("/api/bot/identity")

    assert response.status_code == 500
    assert response.json() == {"error": "server_error"}


async def test_guild_listing_refreshes_near_expiry_token_first(stack) -> None:
    store, stub, _, _ = stack

    async with _client() as client:
        await _login(client)
        row = store.tables["users"][0]
        row["token_expires_at"] = (
            datetime.now(timezone.utc) + timedelta(seconds=10)
        ).isoformat()

        response = await client.get("/api/discord/guilds")

    assert response.status_code == 200
    grants = [form["grant_type"] for form in stub.token_requests]
    assert grants == [["authorization_code"], ["refresh_token"]]
    assert stub.token_requests[1]["refresh_token"] == ["refresh-xyz"]
    assert stub.guild_authorizations == ["Bearer refreshed-access"]

    guilds = response.json()["guilds"]
    assert [guild["id"] for guild in guilds] == ["555", "556"]
    assert guilds[0]["icon"] == "https://cdn.discordapp.com/icons/555/ic.png?size=128"
    assert guilds[0]["owner"] is True
    assert guilds[1]["icon"] is None
    assert guilds[1]["permissions"] == 8


async def test_guild_listing_uses_stored_token_while_fresh(stack) -> None:
    _, stub, _, _ = stack

    async with _client() as client:
        await _login(client)
        response = await client.get("/api/discord/guilds")

    assert response.status_code == 200
    assert len(stub.token_requests) == 1
    assert stub.guild_authorizations == ["Bearer access-xyz"]


async def test_guild_listing_requires_session(stack) -> None:
    _, stub, _, _ = stack

    async with _client() as client:
        response = await client.get("/api/discord/guilds")

    assert response.status_code == 401
    assert stub.guild_authorizations == []


async def test_select_guild_accepts_only_manageable_guilds(stack) -> None:
    _, stub, _, _ = stack

    async with _client() as client:
        await _login(client)
        invalid = await client.post("/api/select-guild", json={"guild_id": "abc"})
        member_only = await client.post("/api/select-guild", json={"guild_id": "557"})
        unknown = await client.post("/api/select-guild", json={"guild_id": "12345"})
        chosen = await client.post("/api/select-guild", json={"guild_id": " 556 "})

    assert invalid.status_code == 400
    assert invalid.json() == {"error": "guild_id_invalid"}
    assert member_only.status_code == 403
    assert member_only.json() == {"error": "guild_not_allowed"}
    assert unknown.status_code == 403
    assert chosen.status_code == 200
    assert chosen.json() == {
        "guild_id": "556",
        "guild_name": "Admin Only",
        "guild_icon": None,
    }
    # the invalid id is rejected before any Discord call
    assert len(stub.guild_authorizations) == 3
