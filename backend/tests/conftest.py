"""
Training Workflow - Test Configuration and Fixtures
"""
import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Keep the app's own engine off the working directory
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ.setdefault('LOG_LEVEL', 'WARNING')

from trainingflow.main import app
from trainingflow.database import Base, enable_sqlite_pragmas, get_db
from trainingflow.services import workflow
from trainingflow.services.broadcaster import broadcaster
from trainingflow.services.transitions import Actor
from trainingflow.services.vocabulary import Role


@pytest.fixture
def engine():
    """Fresh in-memory database per test, one connection shared across threads"""
    test_engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    enable_sqlite_pragmas(test_engine, wal=False)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clean_broadcaster():
    broadcaster.reset()
    yield
    broadcaster.reset()


@pytest.fixture
def client(session_factory):
    """Test client with a per-request session bound to the test database"""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture
def admin():
    return Actor(role=Role.ADMIN, user_id='admin-1')


@pytest.fixture
def assessor():
    return Actor(role=Role.ASSESSOR, user_id='assessor-1')


@pytest.fixture
def moderator():
    return Actor(role=Role.MODERATOR, user_id='moderator-1')


@pytest.fixture
def assigned_uid(db, admin):
    """A pending UID bound to assessor-1 and moderator-1"""
    record = workflow.create_uid(db, admin, 'Sipho Ndlovu', 'ASR-0042', 41)
    workflow.assign_uid(db, record.uid, admin, 'assessor-1', 'moderator-1')
    return record.uid


@pytest.fixture
def learner_form():
    """Build a minimal learner submission"""
    def build(name='Thandi Mokoena', company='Acme Logistics'):
        return {'page1': {'learnerName': name, 'companyName': company}}
    return build
