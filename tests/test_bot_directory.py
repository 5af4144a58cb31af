try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import base64

import httpx
import pytest
from cryptography.fernet import Fernet

from fakes import InMemoryDatastore
from gatehouse.clients.discord import DiscordBotClient
from gatehouse.clients.provisioner import ProvisionerClient
from gatehouse.core.config import DiscordSettings, ProvisionerSettings
from gatehouse.services.bot_directory import DEFAULT_GUILD_PERMISSIONS, BotDirectoryService
from gatehouse.services.foreign_secret import ForeignSecretDecoder
from gatehouse.utils.cache import SingleflightCache

FERNET_KEY = base64.urlsafe_b64encode(b"k" * 32).decode()


class ProvisionerStub:
    def __init__(self, *, identity_status: int = 200, identity: dict | None = None) -> None:
        self.identity_status = identity_status
        self.identity = identity if identity is not None else {"id": "1", "name": "Prov Bot", "avatar": None}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/internal/bot/identity":
            return httpx.Response(self.identity_status, json=self.identity)
        if request.url.path == "/internal/bot/guild":
            if request.url.params.get("guild_id") == "missing":
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(
                200,
                json={"name": "Home", "icon": "ic", "members": 10, "roles": 3, "boosts": 1, "channels": 7},
            )
        return httpx.Response(404)


class DiscordUserStub:
    def __init__(self) -> None:
        self.authorizations: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.authorizations.append(request.headers["authorization"])
        return httpx.Response(200, json={"id": "888", "username": "Discord Bot", "avatar": "hash"})


def _service(provisioner_stub, store, discord_stub=None, *, api_key="prov-key"):
    provisioner = ProvisionerClient(
        ProvisionerSettings(url="http://provisioner.internal", api_key=api_key),
        transport=httpx.MockTransport(provisioner_stub),
    )
    bot_client = DiscordBotClient(
        DiscordSettings(
            client_id="client",
            client_secret="secret",
            redirect_uri="https://app.example.com/callback",
        ),
        transport=httpx.MockTransport(discord_stub or DiscordUserStub()),
    )
    return BotDirectoryService(
        provisioner=provisioner,
        datastore=store,
        bot_client=bot_client,
        secret_decoder=ForeignSecretDecoder(key=FERNET_KEY),
        identity_cache=SingleflightCache(ttl_seconds=300, name="bot-identity"),
        provisioner_cache=SingleflightCache(ttl_seconds=15, name="provisioner"),
    )


@pytest.mark.asyncio
async def test_identity_prefers_provisioner_and_sends_api_key() -> None:
    stub = ProvisionerStub()
    service = _service(stub, InMemoryDatastore())

    identity = await service.fetch_bot_identity("tenant-1")

    assert identity.name == "Prov Bot"
    [request] = stub.requests
    assert request.headers["x-api-key"] == "prov-key"
    assert request.url.params["tenant_id"] == "tenant-1"


@pytest.mark.asyncio
async def test_concurrent_identity_lookups_hit_provisioner_once() -> None:
    stub = ProvisionerStub()
    service = _service(stub, InMemoryDatastore())

    results = await asyncio.gather(*(service.fetch_bot_identity("tenant-1") for _ in range(5)))

    assert {r.name for r in results} == {"Prov Bot"}
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_identity_falls_back_to_stored_identity_row() -> None:
    stub = ProvisionerStub(identity_status=500)
    store = InMemoryDatastore()
    store.seed(
        "bot_identity",
        {"tenant_id": "tenant-1", "bot_id": "5", "bot_name": "Stored Bot", "bot_avatar_url": "a.png"},
    )
    service = _service(stub, store)

    identity = await service.fetch_bot_identity("tenant-1")

    assert identity.name == "Stored Bot"
    assert identity.avatar == "a.png"


@pytest.mark.asyncio
async def test_identity_falls_back_to_discord_with_decrypted_token() -> None:
    stub = ProvisionerStub(identity={"name": ""})
    discord = DiscordUserStub()
    store = InMemoryDatastore()
    encrypted = Fernet(FERNET_KEY.encode()).encrypt(b"real-bot-token").decode()
    store.seed("bot_secrets", {"tenant_id": "tenant-1", "encrypted_token": encrypted})
    service = _service(stub, store, discord)

    identity = await service.fetch_bot_identity("tenant-1")

    assert identity.name == "Discord Bot"
    assert identity.avatar == "https://cdn.discordapp.com/avatars/888/hash.png?size=128"
    assert discord.authorizations == ["Bot real-bot-token"]


@pytest.mark.asyncio
async def test_plaintext_bot_token_is_used_as_is() -> None:
    stub = ProvisionerStub(identity={})
    discord = DiscordUserStub()
    store = InMemoryDatastore()
    store.seed("bot_secrets", {"tenant_id": "tenant-1", "encrypted_token": "legacy-plain"})
    service = _service(stub, store, discord)

    await service.fetch_bot_identity("tenant-1")

    assert discord.authorizations == ["Bot legacy-plain"]


@pytest.mark.asyncio
async def test_unresolvable_identity_is_cached_as_none() -> None:
    stub = ProvisionerStub(identity={})
    store = InMemoryDatastore()
    service = _service(stub, store)

    assert await service.fetch_bot_identity("tenant-1") is None
    assert await service.fetch_bot_identity("tenant-1") is None
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_guild_info_maps_counts_and_default_permissions() -> None:
    stub = ProvisionerStub()
    service = _service(stub, InMemoryDatastore())

    info = await service.fetch_guild_info("555", "tenant-1")
    again = await service.fetch_guild_info("555", "tenant-1")

    assert info.name == "Home"
    assert info.member_count == 10
    assert info.role_count == 3
    assert info.boost_count == 1
    assert info.channels_count == 7
    assert info.permissions == DEFAULT_GUILD_PERMISSIONS
    assert again == info
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_missing_guild_returns_none() -> None:
    service = _service(ProvisionerStub(), InMemoryDatastore())

    assert await service.fetch_guild_info("missing") is None


@pytest.mark.asyncio
async def test_transport_errors_are_not_cached() -> None:
    calls = 0

    def flaky(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"name": "Home"})

    service = _service(flaky, InMemoryDatastore())

    assert await service.fetch_guild_info("555") is None
    info = await service.fetch_guild_info("555")
    assert info.name == "Home"
    assert calls == 2
