import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from data.database import Base, get_db
from main import app
from models.experiments import ExperimentCreate
from services.cache import get_cache_client, get_mock_cache_client
from services.store import ExperimentStore

# In-memory SQLite shared by every session of a test
SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def cache():
    return get_mock_cache_client()

@pytest.fixture
def store(db_session, cache):
    return ExperimentStore(db=db_session, cache=cache)

@pytest.fixture
def make_experiment(store):
    """Creates an experiment through the store, defaults to an active 50/50 A/B test."""
    def _make(**overrides):
        data = {
            "name": "payment_button_test",
            "type": "ab_test",
            "variants": [
                {"name": "control", "weight": 50, "config": {"buttonColor": "blue"}},
                {"name": "variant_a", "weight": 50, "config": {"buttonColor": "green"}},
            ],
        }
        data.update(overrides)
        return store.create_experiment(ExperimentCreate(**data))
    return _make

@pytest.fixture
def client(cache):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_client] = lambda: cache
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

@pytest.fixture
def session_factory():
    """Sessions on the test database, for code that opens its own."""
    return TestingSessionLocal
