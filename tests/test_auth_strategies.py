import asyncio
import base64
import hashlib

import pytest
import pytest_asyncio
from aiohttp import web

from anyapi.auth_strategies.api_key_strategy import ApiKeyStrategy
from anyapi.auth_strategies.auth_strategy_factory import AuthStrategyFactory, oauth2_cache_key
from anyapi.auth_strategies.basic_strategy import BasicStrategy
from anyapi.auth_strategies.bearer_strategy import BearerStrategy
from anyapi.auth_strategies.no_auth_strategy import NoAuthStrategy
from anyapi.auth_strategies.oauth2_strategy import OAuth2Strategy
from anyapi.data.anyapi_config import AnyApiConfig
from anyapi.data.auth import AuthConfig
from anyapi.data.auth_implementations import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth, OAuth2Auth
from anyapi.data.secret_reference import SecretReference
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.exceptions import AuthResolutionError
from anyapi.invocation.request_synthesizer import SynthesizedRequest
from anyapi.secrets.in_mem_secret_store import InMemSecretStore
from anyapi.secrets.secret_resolver import SecretResolver


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def resolver():
    return SecretResolver(store=InMemSecretStore({
        "api-key": "k-123",
        "token": "t-456",
        "user": "aladdin",
        "pass": "open sesame",
        "client-id": "cid",
        "client-secret": "csecret",
        "refresh": "r1",
    }))


def _request():
    return SynthesizedRequest(method="GET", url="https://api.example.com/items?a=1")


@pytest.mark.asyncio
@pytest.mark.parametrize("location", ["header", "query", "cookie"])
async def test_api_key_placement(resolver, location):
    auth = ApiKeyAuth(location=location, parameter_name="X-Key", secret=SecretReference.vault("api-key"))
    request = _request()

    await ApiKeyStrategy(auth, resolver).apply(request)

    if location == "header":
        assert request.headers == {"X-Key": "k-123"}
    elif location == "query":
        assert request.url == "https://api.example.com/items?a=1&X-Key=k-123"
    else:
        assert request.cookies == {"X-Key": "k-123"}


@pytest.mark.asyncio
async def test_bearer_uses_prefix(resolver):
    request = _request()
    await BearerStrategy(BearerAuth(secret=SecretReference.vault("token")), resolver).apply(request)
    assert request.headers["Authorization"] == "Bearer t-456"

    request = _request()
    await BearerStrategy(BearerAuth(prefix="Token", secret=SecretReference.vault("token")), resolver).apply(request)
    assert request.headers["Authorization"] == "Token t-456"


@pytest.mark.asyncio
async def test_basic_encodes_credentials(resolver):
    auth = BasicAuth(username=SecretReference.vault("user"), password=SecretReference.vault("pass"))
    request = _request()

    await BasicStrategy(auth, resolver).apply(request)

    expected = base64.b64encode(b"aladdin:open sesame").decode("ascii")
    assert request.headers["Authorization"] == f"Basic {expected}"


@pytest.mark.asyncio
async def test_no_auth_leaves_request_untouched():
    request = _request()
    strategy = NoAuthStrategy()
    await strategy.apply(request)
    assert request.headers == {}
    assert await strategy.refresh_if_needed() is False


@pytest.mark.asyncio
async def test_missing_secret_raises(resolver):
    auth = BearerAuth(secret=SecretReference.vault("nope"))
    with pytest.raises(AuthResolutionError):
        await BearerStrategy(auth, resolver).apply(_request())


@pytest.fixture
def token_requests():
    return []


@pytest_asyncio.fixture
async def token_server(aiohttp_client, token_requests):
    app = web.Application()

    async def token(request):
        form = dict(await request.post())
        token_requests.append(form)
        # Hold the request open so concurrent callers overlap
        await asyncio.sleep(0.05)
        return web.json_response({"access_token": f"tok-{len(token_requests)}", "expires_in": 3600})

    async def rotating(request):
        form = dict(await request.post())
        token_requests.append(form)
        n = len(token_requests)
        return web.json_response({"access_token": f"tok-{n}", "expires_in": 60, "refresh_token": f"r{n + 1}"})

    async def denied(request):
        token_requests.append(dict(await request.post()))
        return web.json_response({"error": "invalid_client"}, status=401)

    async def no_token(request):
        return web.json_response({"token_type": "bearer"})

    async def not_json(request):
        return web.Response(text="<html>oops</html>", content_type="text/html")

    app.router.add_post("/token", token)
    app.router.add_post("/rotating", rotating)
    app.router.add_post("/denied", denied)
    app.router.add_post("/no-token", no_token)
    app.router.add_post("/not-json", not_json)
    return await aiohttp_client(app)


def _oauth2(token_server, path="/token", **kwargs):
    return OAuth2Auth(
        token_url=str(token_server.make_url(path)),
        client_id=SecretReference.vault("client-id"),
        client_secret=SecretReference.vault("client-secret"),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_oauth2_concurrent_callers_share_one_refresh(token_server, token_requests, resolver):
    clock = FakeClock()
    strategy = OAuth2Strategy(_oauth2(token_server, scopes=["read", "write"]), resolver, clock=clock)
    requests = [_request() for _ in range(10)]

    await asyncio.gather(*(strategy.apply(r) for r in requests))

    assert len(token_requests) == 1
    assert token_requests[0] == {
        "client_id": "cid",
        "client_secret": "csecret",
        "grant_type": "client_credentials",
        "scope": "read write",
    }
    assert {r.headers["Authorization"] for r in requests} == {"Bearer tok-1"}
    assert strategy.expiry == 1000.0 + 3600
    assert strategy.refresh_count == 1


@pytest.mark.asyncio
async def test_oauth2_refreshes_once_inside_buffer(token_server, token_requests, resolver):
    clock = FakeClock()
    strategy = OAuth2Strategy(_oauth2(token_server), resolver, refresh_buffer_seconds=30, clock=clock)
    await strategy.apply(_request())

    clock.now = strategy.expiry - 10
    requests = [_request() for _ in range(5)]
    await asyncio.gather(*(strategy.apply(r) for r in requests))

    assert len(token_requests) == 2
    assert {r.headers["Authorization"] for r in requests} == {"Bearer tok-2"}


@pytest.mark.asyncio
async def test_oauth2_valid_token_is_reused(token_server, token_requests, resolver):
    clock = FakeClock()
    strategy = OAuth2Strategy(_oauth2(token_server), resolver, refresh_buffer_seconds=30, clock=clock)
    await strategy.apply(_request())

    clock.now += 100
    assert strategy.needs_refresh() is False
    assert await strategy.refresh_if_needed() is False
    await strategy.apply(_request())

    assert len(token_requests) == 1


@pytest.mark.asyncio
async def test_oauth2_refresh_token_grant_and_rotation(token_server, token_requests, resolver):
    clock = FakeClock()
    auth = _oauth2(token_server, "/rotating", flow="authorization_code",
                   refresh_token=SecretReference.vault("refresh"))
    strategy = OAuth2Strategy(auth, resolver, clock=clock)

    await strategy.apply(_request())
    clock.now = strategy.expiry
    await strategy.apply(_request())

    assert [(r["grant_type"], r["refresh_token"]) for r in token_requests] == [
        ("refresh_token", "r1"),
        ("refresh_token", "r2"),
    ]


@pytest.mark.asyncio
async def test_oauth2_client_credentials_ignores_refresh_token(token_server, token_requests, resolver):
    auth = _oauth2(token_server, refresh_token=SecretReference.vault("refresh"))
    await OAuth2Strategy(auth, resolver).apply(_request())
    assert token_requests[0]["grant_type"] == "client_credentials"
    assert "refresh_token" not in token_requests[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/denied", "/no-token", "/not-json"])
async def test_oauth2_token_failures(token_server, resolver, path):
    strategy = OAuth2Strategy(_oauth2(token_server, path), resolver)
    request = _request()

    with pytest.raises(AuthResolutionError):
        await strategy.apply(request)

    assert "Authorization" not in request.headers
    assert strategy.access_token is None


def test_oauth2_cache_key():
    auth = OAuth2Auth(
        token_url="https://auth.example.com/token",
        client_id=SecretReference.vault("client-id"),
        client_secret=SecretReference.vault("client-secret"),
    )
    digest = hashlib.sha256(b"client-id").hexdigest()[:16]
    context = TenantSecretContext(tenant_id="t1", encryption_salt="c2FsdA==")

    assert oauth2_cache_key(auth) == f"https://auth.example.com/token:{digest}:global"
    assert oauth2_cache_key(auth, context) == f"https://auth.example.com/token:{digest}:t1"


def test_oauth2_cache_key_hashes_ciphertext():
    encrypted = SecretReference(encrypted_value="Y2lwaGVy", iv="aXY=", auth_tag="dGFn")
    auth = OAuth2Auth(token_url="https://auth.example.com/token", client_id=encrypted, client_secret=encrypted)
    digest = hashlib.sha256(b"Y2lwaGVy").hexdigest()[:16]
    assert f":{digest}:" in oauth2_cache_key(auth)


class CustomAuth(AuthConfig):
    auth_type: str = "custom"


def test_factory_stateless_strategies(resolver):
    factory = AuthStrategyFactory(resolver)

    assert isinstance(factory.create(None), NoAuthStrategy)
    assert isinstance(factory.create(NoAuth()), NoAuthStrategy)
    assert isinstance(factory.create(ApiKeyAuth(secret=SecretReference.vault("api-key"))), ApiKeyStrategy)
    assert isinstance(factory.create(BearerAuth(secret=SecretReference.vault("token"))), BearerStrategy)
    basic = BasicAuth(username=SecretReference.vault("user"), password=SecretReference.vault("pass"))
    assert isinstance(factory.create(basic), BasicStrategy)
    with pytest.raises(AuthResolutionError, match="Unsupported"):
        factory.create(CustomAuth())


def test_factory_requires_context_for_encrypted_secrets(resolver):
    encrypted = SecretReference(encrypted_value="Y2lwaGVy", iv="aXY=", auth_tag="dGFn")
    factory = AuthStrategyFactory(resolver)

    with pytest.raises(AuthResolutionError, match="tenant context"):
        factory.create(BearerAuth(secret=encrypted))

    context = TenantSecretContext(tenant_id="t1", encryption_salt="c2FsdA==")
    assert isinstance(factory.create(BearerAuth(secret=encrypted), context), BearerStrategy)


def test_factory_caches_oauth2_per_client_and_tenant(resolver):
    factory = AuthStrategyFactory(resolver, AnyApiConfig(oauth2_refresh_buffer_seconds=60))
    auth = OAuth2Auth(
        token_url="https://auth.example.com/token",
        client_id=SecretReference.vault("client-id"),
        client_secret=SecretReference.vault("client-secret"),
    )
    t1 = TenantSecretContext(tenant_id="t1", encryption_salt="c2FsdA==")
    t2 = TenantSecretContext(tenant_id="t2", encryption_salt="c2FsdA==")

    first = factory.create(auth, t1)
    assert factory.create(auth, t1) is first
    assert factory.create(auth, t2) is not first
    assert first.refresh_buffer_seconds == 60
    assert factory.cached_oauth2_count == 2

    assert factory.invalidate_for(auth, t1) is True
    assert factory.invalidate_for(auth, t1) is False
    assert factory.create(auth, t1) is not first
    assert factory.invalidate_oauth2(oauth2_cache_key(auth, t2)) is True
    assert factory.invalidate_for(NoAuth()) is False
    assert factory.cached_oauth2_count == 1


def test_factory_invalidates_every_tenant_without_context(resolver):
    factory = AuthStrategyFactory(resolver)
    auth = OAuth2Auth(
        token_url="https://auth.example.com/token",
        client_id=SecretReference.vault("client-id"),
        client_secret=SecretReference.vault("client-secret"),
    )
    other = auth.model_copy(update={"client_id": SecretReference.vault("other-client")})
    for tenant in ("t1", "t2"):
        factory.create(auth, TenantSecretContext(tenant_id=tenant, encryption_salt="c2FsdA=="))
    kept = factory.create(other, TenantSecretContext(tenant_id="t1", encryption_salt="c2FsdA=="))

    assert factory.invalidate_for(auth) is True
    assert factory.cached_oauth2_count == 1
    assert factory.invalidate_for(auth) is False
    assert factory.create(other, TenantSecretContext(tenant_id="t1", encryption_salt="c2FsdA==")) is kept


def test_factory_replaces_strategy_when_auth_changes(resolver):
    factory = AuthStrategyFactory(resolver)
    context = TenantSecretContext(tenant_id="t1", encryption_salt="c2FsdA==")
    auth = OAuth2Auth(
        token_url="https://auth.example.com/token",
        client_id=SecretReference.vault("client-id"),
        client_secret=SecretReference.vault("client-secret"),
        scopes=["a"],
    )
    first = factory.create(auth, context)

    changed = auth.model_copy(update={"client_secret": SecretReference.vault("client-secret-2"), "scopes": ["b"]})
    second = factory.create(changed, context)

    assert second is not first
    assert second.auth == changed
    assert factory.create(changed, context) is second
    assert factory.cached_oauth2_count == 1


@pytest.mark.asyncio
async def test_factory_oauth2_strategy_is_shared_across_calls(token_server, token_requests, resolver):
    factory = AuthStrategyFactory(resolver)
    auth = _oauth2(token_server)

    await asyncio.gather(*(factory.create(auth).apply(_request()) for _ in range(5)))
    await factory.create(auth).apply(_request())

    assert len(token_requests) == 1
