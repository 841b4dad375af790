import pytest

pytest.importorskip("sqlalchemy")
pytest.importorskip("pydantic_settings")

from campus_voice.adapters.contracts import PortalBackend
from campus_voice.models.enums import Role
from campus_voice.services.auth.session import Session

from fakes import FakeBlobStorage, FakeIdentity, FakeRecordStore, make_backend


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def storage() -> FakeBlobStorage:
    return FakeBlobStorage()


@pytest.fixture
def backend(store, identity, storage) -> PortalBackend:
    return make_backend(store, identity, storage)


@pytest.fixture
def student_session() -> Session:
    return Session(user_id="student-1", role=Role.STUDENT, email="ana@campus.edu", token="token-student")


@pytest.fixture
def other_student_session() -> Session:
    return Session(user_id="student-2", role=Role.STUDENT, email="ben@campus.edu", token="token-other")


@pytest.fixture
def admin_session() -> Session:
    return Session(user_id="admin-1", role=Role.ADMIN, email="dean@campus.edu", token="token-admin")
