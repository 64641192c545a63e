import base64
import itertools

import pytest

from tollgate.models.clients import Client, GrantType
from tollgate.models.config import OAuthConfig
from tollgate.oauth_server import OAuth2Server
from tollgate.services.directory import InMemoryCredentialDirectory
from tollgate.stores.memory import InMemoryOAuthStore

CLIENT_ID = "client-key-123"
CLIENT_SECRET = "client-secret-456"
REDIRECT_URI = "http://example.org"
START_TIME_MS = 1_700_000_000_000


class FakeClock:
    """Controllable millisecond clock."""

    def __init__(self, now: int = START_TIME_MS):
        self._now = now

    def now(self) -> int:
        return self._now

    def advance(self, ms: int) -> None:
        self._now += ms


class SequentialTokenGenerator:
    """Deterministic token source: tok-0001, tok-0002, ..."""

    def __init__(self, prefix: str = "tok"):
        self.prefix = prefix
        self._counter = itertools.count(1)

    def generate(self) -> str:
        return f"{self.prefix}-{next(self._counter):04d}"


def basic_auth(client_id: str = CLIENT_ID, secret: str = CLIENT_SECRET) -> str:
    encoded = base64.b64encode(f"{client_id}:{secret}".encode()).decode("ascii")
    return f"Basic {encoded}"


def make_client(
    client_id: str = CLIENT_ID,
    client_secret: str = CLIENT_SECRET,
    grant_types: set[GrantType] | None = None,
    redirect_uris: set[str] | None = None,
) -> Client:
    if grant_types is None:
        grant_types = {
            GrantType.AUTHORIZATION_CODE,
            GrantType.IMPLICIT,
            GrantType.PASSWORD,
            GrantType.CLIENT_CREDENTIALS,
        }
    return Client(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uris=frozenset(redirect_uris or {REDIRECT_URI}),
        grant_types=frozenset(grant_types),
    )


def check_password(username: str, password: str) -> bool:
    return username == "foo" and password == "bar"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def generator() -> SequentialTokenGenerator:
    return SequentialTokenGenerator()


@pytest.fixture
def client() -> Client:
    return make_client()


@pytest.fixture
def directory(client: Client) -> InMemoryCredentialDirectory:
    return InMemoryCredentialDirectory([client])


@pytest.fixture
def store() -> InMemoryOAuthStore:
    return InMemoryOAuthStore()


@pytest.fixture
def config() -> OAuthConfig:
    return OAuthConfig()


@pytest.fixture
def server(directory, store, config, generator, clock) -> OAuth2Server:
    return OAuth2Server(
        directory,
        store=store,
        config=config,
        password_check=check_password,
        token_generator=generator,
        clock=clock,
    )
