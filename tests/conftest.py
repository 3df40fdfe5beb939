import copy
import itertools
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions

from studentreports.app.auth import get_current_user
from studentreports.app.firebase_service import get_bucket, get_db
from studentreports.app.schemas import SessionUser


# ---------------------------------------------------------------------------
# In-memory Firestore / Storage doubles covering the calls the app makes.
# ---------------------------------------------------------------------------


def _apply_changes(target: dict, changes: dict) -> None:
    for key, value in changes.items():
        if value is firestore.DELETE_FIELD:
            target.pop(key, None)
        else:
            target[key] = copy.deepcopy(value)


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = copy.deepcopy(data)

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocumentReference:
    def __init__(self, db, collection, doc_id):
        self._db = db
        self._collection = collection
        self.id = doc_id

    @property
    def _documents(self):
        return self._db.store.setdefault(self._collection, {})

    def get(self):
        return FakeSnapshot(self, self._documents.get(self.id))

    def set(self, data):
        self._documents[self.id] = {}
        _apply_changes(self._documents[self.id], data)

    def update(self, changes):
        if self.id not in self._documents:
            raise gcp_exceptions.NotFound(f"No document to update: {self._collection}/{self.id}")
        _apply_changes(self._documents[self.id], changes)

    def delete(self):
        self._documents.pop(self.id, None)


class FakeQuery:
    def __init__(self, db, collection, filters=(), limit=None):
        self._db = db
        self._collection = collection
        self._filters = tuple(filters)
        self._limit = limit

    def where(self, field, op, value):
        if op != "==":
            raise NotImplementedError(f"Unsupported operator {op}")
        return FakeQuery(self._db, self._collection, self._filters + ((field, value),), self._limit)

    def limit(self, count):
        return FakeQuery(self._db, self._collection, self._filters, count)

    def get(self):
        return list(self.stream())

    def stream(self):
        documents = self._db.store.get(self._collection, {})
        matched = [
            doc_id
            for doc_id, data in documents.items()
            if all(data.get(field) == value for field, value in self._filters)
        ]
        if self._limit is not None:
            matched = matched[: self._limit]
        return iter([FakeDocumentReference(self._db, self._collection, doc_id).get() for doc_id in matched])


class FakeCollection(FakeQuery):
    def document(self, doc_id=None):
        return FakeDocumentReference(self._db, self._collection, doc_id or self._db.next_id(self._collection))

    def add(self, data):
        doc_ref = self.document()
        doc_ref.set(data)
        return datetime.now(timezone.utc), doc_ref


class FakeBatch:
    def __init__(self, db):
        self._db = db
        self._operations = []

    def delete(self, doc_ref):
        self._operations.append(doc_ref.delete)

    def update(self, doc_ref, changes):
        self._operations.append(lambda: doc_ref.update(changes))

    def commit(self):
        self._db.commits += 1
        for operation in self._operations:
            operation()
        self._operations = []


class FakeFirestore:
    def __init__(self):
        self.store = {}
        self.commits = 0
        self._ids = itertools.count(1)

    def next_id(self, collection):
        return f"{collection}-{next(self._ids)}"

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch(self)

    def seed(self, collection, doc_id, **data):
        self.collection(collection).document(doc_id).set(data)
        return doc_id

    def docs(self, collection):
        return copy.deepcopy(self.store.get(collection, {}))


class FakeBlob:
    def __init__(self, bucket, path):
        self._bucket = bucket
        self.name = path
        self.metadata = None

    def upload_from_string(self, data, content_type=None):
        self._bucket.objects[self.name] = {
            "data": data,
            "content_type": content_type,
            "metadata": self.metadata,
        }

    def delete(self):
        if self.name not in self._bucket.objects:
            raise gcp_exceptions.NotFound(f"No such object: {self.name}")
        del self._bucket.objects[self.name]
        self._bucket.deleted.append(self.name)


class FakeBucket:
    name = "reports-test.appspot.com"

    def __init__(self):
        self.objects = {}
        self.deleted = []

    def blob(self, path):
        return FakeBlob(self, path)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

ADMIN = SessionUser(email="admin@example.com", display_name="Ada Admin", is_admin=True)
TEACHER = SessionUser(email="teacher@example.com", display_name="Tess Teacher", is_admin=False)


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def seeded_db(db):
    """A teacher with one class, two students and one report."""

    created = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
    db.seed("teachers", "t1", email="teacher@example.com", firstName="Tess", lastName="Teacher")
    db.seed(
        "classes",
        "c1",
        teacherEmail="teacher@example.com",
        classDay="Monday",
        classTime="16:00",
        classLocation="Room 4",
        classLevel="Level 2",
    )
    db.seed("classes", "c2", teacherEmail="other@example.com", classLevel="Level 5")
    db.seed("students", "s1", classId="c1", firstName="Mei", lastName="Chen")
    db.seed("students", "s2", classId="c1", firstName="Adam", lastName="Brown")
    db.seed("students", "s3", classId="c2", firstName="Zoe", lastName="Ng")
    db.seed(
        "reports",
        "r1",
        studentId="s1",
        classId="c1",
        teacherEmail="teacher@example.com",
        reportText="Great progress this term.",
        createdAt=created,
        updatedAt=created,
    )
    return db


def _make_client(db, bucket, user):
    from studentreports.server import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_bucket] = lambda: bucket
    app.dependency_overrides[get_current_user] = lambda: user
    return app


@pytest.fixture
def admin_client(seeded_db, bucket):
    app = _make_client(seeded_db, bucket, ADMIN)
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def teacher_client(seeded_db, bucket):
    app = _make_client(seeded_db, bucket, TEACHER)
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
