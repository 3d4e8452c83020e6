import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from seed import seed
from server import app, get_backend
from threadnotion.backend import Backend


class FakeChatLlm:
    """Scripted stand-in for ChatLlmClient. Exceptions in `replies` are raised."""

    def __init__(self, replies=None, default="Hi, I'm just browsing."):
        self.replies = list(replies or [])
        self.default = default
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def invoke(self, messages, *, json_mode=False, retries=3):
        self.calls.append({"messages": list(messages), "json_mode": json_mode})
        if not self.replies:
            return self.default
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def llm():
    return FakeChatLlm()


@pytest.fixture
def backend(engine, llm):
    return Backend(engine=engine, chat_llm=llm, history_max_tokens=8000)


@pytest.fixture
def catalogue(backend):
    products, personas = seed(backend.Session)
    return {
        "products": {p.sku: p.id for p in products},
        "personas": {p.name: p.id for p in personas},
    }


@pytest.fixture
def client(backend):
    app.dependency_overrides[get_backend] = lambda: backend
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def file_backend(tmp_path, llm):
    """Backend on a SQLite file, so concurrent sessions get their own connections."""
    engine = create_engine(f"sqlite:///{tmp_path / 'threadnotion-test.db'}")
    yield Backend(engine=engine, chat_llm=llm)
    engine.dispose()


@pytest.fixture
def file_client(file_backend):
    app.dependency_overrides[get_backend] = lambda: file_backend
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
