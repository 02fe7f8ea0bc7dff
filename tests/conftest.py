import pytest

from fake_backend import BASE_URL, FakeBackend, make_token
from taleforge.api import ApiClient
from taleforge.flows import Navigator
from taleforge.session import SessionContext, TokenStore


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session_file(tmp_path):
    return tmp_path / "data" / "session.json"


@pytest.fixture
def session(session_file) -> SessionContext:
    return SessionContext(TokenStore(session_file))


@pytest.fixture
def events(session) -> list[str]:
    """Every session event, in order."""
    seen: list[str] = []
    session.subscribe(lambda event, _: seen.append(event))
    return seen


@pytest.fixture
def navigator(session):
    nav = Navigator(session)
    yield nav
    nav.close()


@pytest.fixture
def api(session, backend) -> ApiClient:
    return ApiClient(session, BASE_URL, transport=backend.transport)


@pytest.fixture
def player(session) -> SessionContext:
    """A session logged in as a regular player, far from expiry."""
    session.login(make_token())
    return session


@pytest.fixture
def admin(session) -> SessionContext:
    session.login(make_token(email="admin@example.com", player_id=1, role="Administrator"))
    return session
