"""
Pytest configuration and fixtures for the campaign API tests.
"""

import os

# Settings are read at import time; keep the API off PostgreSQL and make
# password hashing cheap before anything from `api` is imported.
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('LOG_FILE', os.path.join(os.path.dirname(__file__), 'test_api.log'))

import io
from datetime import date

import openpyxl
import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.models.schema import Base, Candidate, Group, Leader, Location, Planillado
from services.notification_service import NotificationService

# Load environment
load_dotenv()

# In-memory SQLite unless a real test database is configured
TEST_DATABASE_URL = os.getenv('TEST_DATABASE_URL', 'sqlite://')


class RecordingNotifier(NotificationService):
    """Notifier that keeps published events in memory."""

    def __init__(self):
        super().__init__(None, 'test:notifications')
        self.events = []

    def publish(self, event, payload):
        self.events.append((event, payload))
        return True


@pytest.fixture(scope='session')
def engine():
    """Create test database engine."""
    if TEST_DATABASE_URL.startswith('sqlite'):
        eng = create_engine(
            TEST_DATABASE_URL,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )

        # pysqlite does not emit BEGIN itself, which breaks SAVEPOINT
        @event.listens_for(eng, 'connect')
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(eng, 'begin')
        def _emit_begin(conn):
            conn.exec_driver_sql('BEGIN')
    else:
        eng = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture(scope='function')
def session(engine):
    """
    Create a new database session for a test.

    Service commits become savepoints inside an outer transaction that is
    rolled back when the test ends.
    """
    connection = engine.connect()
    transaction = connection.begin()
    Session = sessionmaker(bind=connection, join_transaction_mode='create_savepoint')
    sess = Session()

    yield sess

    sess.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


def _app_with_overrides(session, notifier):
    from api.dependencies import get_db, get_notifier
    from api.main import app

    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[get_notifier] = lambda: notifier
    return app


@pytest.fixture
def client(session, notifier):
    """API client with authentication disabled."""
    from api.dependencies import get_current_user

    app = _app_with_overrides(session, notifier)
    app.dependency_overrides[get_current_user] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(session, notifier):
    """API client that enforces bearer tokens."""
    app = _app_with_overrides(session, notifier)
    yield TestClient(app)
    app.dependency_overrides.clear()


# Sample data

@pytest.fixture
def candidate(session):
    candidate = Candidate(name='Laura Restrepo', email='laura@example.com', meta=100)
    session.add(candidate)
    session.commit()
    return candidate


@pytest.fixture
def group(session, candidate):
    group = Group(name='Grupo Norte', candidate_id=candidate.id, zone='Norte', meta=10)
    session.add(group)
    session.commit()
    return group


@pytest.fixture
def leader(session, group):
    leader = Leader(cedula='11223344', first_name='Carlos', last_name='Martinez',
                    neighborhood='El Golf', group_id=group.id, meta=5)
    session.add(leader)
    session.commit()
    return leader


@pytest.fixture
def make_planillado(session):
    """Factory for planillados with sensible defaults."""
    counter = iter(range(10000000, 10001000))

    def _make(**fields):
        values = {
            'cedula': str(next(counter)),
            'first_name': 'Juan',
            'last_name': 'Perez',
            'status': 'pending',
        }
        values.update(fields)
        planillado = Planillado(**values)
        session.add(planillado)
        session.commit()
        return planillado

    return _make


@pytest.fixture
def location_tree(session):
    """Atlantico > Barranquilla > El Prado."""
    department = Location(name='Atlántico', type='department', code='08')
    session.add(department)
    session.commit()
    city = Location(name='Barranquilla', type='municipality', code='08001', parent_id=department.id)
    session.add(city)
    session.commit()
    neighborhood = Location(name='El Prado', type='neighborhood', parent_id=city.id, population=1200)
    session.add(neighborhood)
    session.commit()
    return department, city, neighborhood


def xlsx_bytes(headers, rows):
    """Build an .xlsx file in memory."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def birth_date_for_age(age: int) -> date:
    today = date.today()
    try:
        return today.replace(year=today.year - age)
    except ValueError:
        return today.replace(year=today.year - age, day=28)


@pytest.fixture
def birth_date():
    """Birth date giving the requested age today."""
    return birth_date_for_age


@pytest.fixture
def xlsx_file():
    return xlsx_bytes
