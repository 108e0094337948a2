"""
Shared pytest fixtures for the Lessons Learned Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - scope: Pre-created organization / project type / project as an ImportScope
    - store: SqlAlchemyStore bound to the test session
    - recording_store: RecordingStore wrapping ``store``
"""

import pytest

from app import create_app
from app.core.exceptions import StoreError
from app.models import db as _db
from app.models.organization import Organization, Project, ProjectType
from app.services.helpers.structured_store import SqlAlchemyStore, StructuredStore
from app.services.import_scope import ImportScope


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Scope fixtures ───────────────────────────────────────────────────────


def make_scope(name="Acme", slug="acme", created_by="planner@acme.test") -> ImportScope:
    """Create organization → project type → project rows and return their scope."""
    org = Organization(name=name, slug=slug)
    _db.session.add(org)
    _db.session.flush()
    ptype = ProjectType(organization_id=org.id, name="Construction")
    _db.session.add(ptype)
    _db.session.flush()
    project = Project(organization_id=org.id, project_type_id=ptype.id, name=f"{name} HQ")
    _db.session.add(project)
    _db.session.commit()
    return ImportScope(
        organization_id=org.id,
        project_id=project.id,
        project_type_id=ptype.id,
        created_by=created_by,
    )


@pytest.fixture()
def scope():
    return make_scope()


@pytest.fixture()
def store():
    return SqlAlchemyStore(_db.session)


# ── Store double ─────────────────────────────────────────────────────────


class RecordingStore(StructuredStore):
    """Wraps a real store; records every call and can fail chosen ones.

    ``fail_on`` maps ``(operation, table)`` to the 1-based call number (for
    that pair) that should raise StoreError instead of reaching the store.
    """

    def __init__(self, inner: StructuredStore, fail_on: dict | None = None):
        self.inner = inner
        self.fail_on = dict(fail_on or {})
        self.calls: list[tuple] = []
        self._counts: dict[tuple, int] = {}

    def _record(self, operation, table, size):
        key = (operation, table)
        self._counts[key] = self._counts.get(key, 0) + 1
        self.calls.append((operation, table, size))
        if self.fail_on.get(key) == self._counts[key]:
            raise StoreError(f"injected {operation} failure", table=table, operation=operation)

    def calls_for(self, operation, table=None):
        return [c for c in self.calls if c[0] == operation and (table is None or c[1] == table)]

    def write_calls(self):
        return [c for c in self.calls if c[0] != "select"]

    def select(self, table, filters=(), columns=None):
        self._record("select", table, None)
        return self.inner.select(table, filters, columns)

    def insert(self, table, rows):
        self._record("insert", table, len(rows))
        return self.inner.insert(table, rows)

    def update(self, table, patch, filters):
        self._record("update", table, None)
        return self.inner.update(table, patch, filters)

    def delete(self, table, filters):
        self._record("delete", table, None)
        return self.inner.delete(table, filters)


@pytest.fixture()
def recording_store(store):
    return RecordingStore(store)


@pytest.fixture()
def recording_store_factory(store):
    """Build a RecordingStore with injected failures: ``factory({("insert", t): 2})``."""
    return lambda fail_on=None: RecordingStore(store, fail_on)


@pytest.fixture()
def scope_factory():
    return make_scope
