"""
Tests for OrmDocumentStore.

Runs the storage port against the test database. ORM calls go through
database_sync_to_async, hence transactional test cases.

Verifies:
- Datetimes survive the JSONField round-trip
- Filtering, paging and counting run as SQL, array paths via DocumentKey
- Unique indexes are enforced by a database constraint (sparse ones
  release the key when the field is unset)
- The same criteria return the same documents as the memory store
- ping() maps database failures to ExternalServiceError
"""

from datetime import datetime, timedelta, timezone

import pytest
from asgiref.sync import async_to_sync
from django.db import DatabaseError, IntegrityError, connection, transaction
from django.test.utils import CaptureQueriesContext

from core.documents import DuplicateKeyError
from core.documents.lookups import array_keys, canonical, order_by_fields
from core.documents.memory import MemoryDocumentStore
from core.documents.orm import OrmDocumentStore
from core.exceptions import ExternalServiceError
from core.models import DocumentKey, DocumentUniqueKey, StoredDocument

STAMP = datetime(2026, 2, 3, 4, 5, 6, tzinfo=timezone.utc)

pytestmark = pytest.mark.django_db(transaction=True)


@pytest.fixture
def store():
    return OrmDocumentStore()


def run(coroutine_function, *args, **kwargs):
    return async_to_sync(coroutine_function)(*args, **kwargs)


# =============================================================================
# Lookup helpers
# =============================================================================


class TestLookupHelpers:
    """Key rows and ordering arguments derived from documents and sorts."""

    def test_array_keys_cover_scalars_inside_arrays_only(self):
        keys = array_keys(
            {
                "name": "Team",
                "participants": [{"user": "u1", "role": "admin"}, {"user": "u2"}],
                "tags": ["x"],
                "read_by": [{"user": "u3", "read_at": STAMP}],
            }
        )

        assert ("participants.user", '"u1"') in keys
        assert ("participants.user", '"u2"') in keys
        assert ("participants.role", '"admin"') in keys
        assert ("tags", '"x"') in keys
        assert ("read_by.read_at", canonical(STAMP)) in keys
        assert all(path != "name" for path, _ in keys)

    def test_canonical_is_key_order_independent(self):
        assert canonical({"b": 1, "a": 2}) == canonical({"a": 2, "b": 1})

    def test_order_by_fields(self):
        assert order_by_fields([("updated_at", -1), ("_id", 1)]) == ["-body__updated_at", "doc_id", "id"]
        assert order_by_fields(None) == ["id"]


# =============================================================================
# Store behaviour
# =============================================================================


class TestOrmStore:
    def test_insert_and_find_round_trip(self, store):
        document_id = run(
            store.insert_one,
            "messages",
            {"chat_id": "c1", "created_at": STAMP, "read_by": [{"user": "u1", "read_at": STAMP}]},
        )

        document = run(store.find_one, "messages", {"_id": document_id})

        assert document["created_at"] == STAMP
        assert document["read_by"][0]["read_at"] == STAMP
        assert StoredDocument.objects.get(doc_id=document_id).collection == "messages"

    def test_collections_are_separate(self, store):
        run(store.insert_one, "users", {"_id": "same"})
        run(store.insert_one, "chats", {"_id": "same"})

        assert run(store.count, "users") == 1
        assert run(store.count, "chats") == 1

    def test_duplicate_id_raises(self, store):
        run(store.insert_one, "users", {"_id": "u1"})

        with pytest.raises(DuplicateKeyError):
            run(store.insert_one, "users", {"_id": "u1"})

    def test_update_and_filter_on_datetimes(self, store):
        run(store.insert_one, "messages", {"_id": "m1", "created_at": STAMP, "read_by": []})

        result = run(
            store.update_one,
            "messages",
            {"_id": "m1", "read_by.user": {"$ne": "u2"}},
            {"$push": {"read_by": {"user": "u2", "read_at": STAMP}}},
        )

        assert result.modified == 1
        assert run(store.count, "messages", {"created_at": {"$lte": STAMP}}) == 1
        assert run(store.count, "messages", {"created_at": {"$gt": STAMP}}) == 0
        assert run(store.count, "messages", {"read_by.user": "u2"}) == 1
        assert run(store.count, "messages", {"read_by.user": {"$ne": "u2"}}) == 0

    def test_key_rows_follow_updates(self, store):
        run(store.insert_one, "chats", {"_id": "c1", "participants": [{"user": "u1"}, {"user": "u2"}]})

        run(store.update_one, "chats", {"_id": "c1"}, {"$pull": {"participants": {"user": "u2"}}})

        assert run(store.count, "chats", {"participants.user": "u2"}) == 0
        assert run(store.count, "chats", {"participants.user": "u1"}) == 1
        assert not DocumentKey.objects.filter(path="participants.user", value='"u2"').exists()

    def test_delete_many(self, store):
        for n in range(3):
            run(store.insert_one, "items", {"n": n})

        assert run(store.delete_many, "items", {"n": {"$gte": 1}}) == 2
        assert run(store.delete_one, "items", {"n": 5}) == 0
        assert run(store.count, "items") == 1

    def test_deleting_a_document_removes_its_key_rows(self, store):
        run(store.insert_one, "chats", {"_id": "c1", "participants": [{"user": "u1"}]})

        run(store.delete_one, "chats", {"_id": "c1"})

        assert not DocumentKey.objects.exists()

    def test_ping(self, store):
        assert run(store.ping) is True

    def test_ping_failure_raises_external_service_error(self, store, monkeypatch):
        def broken(*args, **kwargs):
            raise DatabaseError("connection refused")

        monkeypatch.setattr(store, "_count_sync", broken)

        with pytest.raises(ExternalServiceError) as exc_info:
            run(store.ping)

        assert exc_info.value.error_code == "DATABASE_UNAVAILABLE"


# =============================================================================
# Queries run in the database
# =============================================================================


class TestQueriesRunInDatabase:
    """
    Verifies: criteria, paging and counts are answered by SQL.

    Why it matters: evaluating every document in Python turns each chat
    listing and unread count into a scan of the whole collection.
    """

    def test_count_is_a_single_count_query(self, store):
        for index in range(5):
            run(
                store.insert_one,
                "chats",
                {"_id": f"c{index}", "participants": [{"user": f"u{index % 2}"}], "is_active": True},
            )

        with CaptureQueriesContext(connection) as queries:
            total = store._count_sync("chats", {"participants.user": "u1", "is_active": True})

        assert total == 2
        assert len(queries.captured_queries) == 1
        sql = queries.captured_queries[0]["sql"]
        assert "COUNT(" in sql.upper()
        assert "core_document_key" in sql

    def test_skip_and_limit_become_sql_paging(self, store):
        for index in range(5):
            run(
                store.insert_one,
                "messages",
                {"_id": f"m{index}", "chat": "c1", "created_at": STAMP + timedelta(minutes=index)},
            )

        with CaptureQueriesContext(connection) as queries:
            documents = store._find_sync(
                "messages", {"chat": "c1"}, [("created_at", -1), ("_id", -1)], 1, 2
            )

        assert [document["_id"] for document in documents] == ["m3", "m2"]
        assert len(queries.captured_queries) == 1
        assert "LIMIT" in queries.captured_queries[0]["sql"].upper()


# =============================================================================
# Unique indexes
# =============================================================================


class TestUniqueIndexes:
    """
    Verifies: unique indexes are enforced by the database.

    Why it matters: a check-then-insert in Python lets two concurrent
    writers both pass the check.
    """

    def test_unique_index_enforced(self, store):
        store.create_index("users", ["email"], unique=True)
        run(store.insert_one, "users", {"email": "a@example.com"})

        with pytest.raises(DuplicateKeyError) as exc_info:
            run(store.insert_one, "users", {"email": "a@example.com"})

        assert exc_info.value.details == {"collection": "users", "index": "email_unique"}
        assert run(store.count, "users") == 1

    def test_constraint_lives_in_the_database(self, store):
        store.create_index("users", ["email"], unique=True)
        run(store.insert_one, "users", {"_id": "u1", "email": "a@example.com"})
        run(store.insert_one, "users", {"_id": "u2", "email": "b@example.com"})
        other = StoredDocument.objects.get(doc_id="u2")

        with pytest.raises(IntegrityError), transaction.atomic():
            DocumentUniqueKey.objects.create(
                document=other,
                collection="users",
                index="email_unique",
                value=canonical(["a@example.com"]),
            )

    def test_update_into_a_taken_key_is_rejected(self, store):
        store.create_index("users", ["email"], unique=True)
        run(store.insert_one, "users", {"_id": "u1", "email": "a@example.com"})
        run(store.insert_one, "users", {"_id": "u2", "email": "b@example.com"})

        with pytest.raises(DuplicateKeyError):
            run(store.update_one, "users", {"_id": "u2"}, {"$set": {"email": "a@example.com"}})

        assert run(store.find_one, "users", {"_id": "u2"})["email"] == "b@example.com"

    def test_compound_unique_index(self, store):
        store.create_index("contacts", ["owner", "contact"], unique=True)
        run(store.insert_one, "contacts", {"owner": "u1", "contact": "u2"})
        run(store.insert_one, "contacts", {"owner": "u2", "contact": "u1"})

        with pytest.raises(DuplicateKeyError):
            run(store.insert_one, "contacts", {"owner": "u1", "contact": "u2"})

    def test_sparse_index_releases_key_on_unset(self, store):
        """A deactivated chat with its pair key unset no longer blocks a new one."""
        store.create_index("chats", ["pair_key"], unique=True, sparse=True)
        run(store.insert_one, "chats", {"_id": "c1", "pair_key": "u1|u2", "is_active": True})
        run(store.insert_one, "chats", {"_id": "g1", "type": "group"})
        run(store.insert_one, "chats", {"_id": "g2", "type": "group"})

        with pytest.raises(DuplicateKeyError):
            run(store.insert_one, "chats", {"_id": "c2", "pair_key": "u1|u2"})

        run(
            store.update_one,
            "chats",
            {"_id": "c1"},
            {"$set": {"is_active": False}, "$unset": {"pair_key": ""}},
        )
        run(store.insert_one, "chats", {"_id": "c2", "pair_key": "u1|u2", "is_active": True})

        assert run(store.count, "chats", {"pair_key": "u1|u2"}) == 1


# =============================================================================
# Parity with the memory store
# =============================================================================

CHATS = [
    {
        "_id": "c1",
        "type": "group",
        "name": "Alpha",
        "participants": [{"user": "u1", "role": "admin"}, {"user": "u2", "role": "member"}],
        "is_active": True,
        "updated_at": STAMP + timedelta(minutes=1),
    },
    {
        "_id": "c2",
        "type": "individual",
        "pair_key": "u1|u3",
        "participants": [{"user": "u1", "role": "member"}, {"user": "u3", "role": "member"}],
        "is_active": True,
        "updated_at": STAMP + timedelta(minutes=3),
    },
    {
        "_id": "c3",
        "type": "group",
        "name": "beta",
        "participants": [{"user": "u2", "role": "admin"}],
        "is_active": False,
        "updated_at": STAMP + timedelta(minutes=2),
    },
    {
        "_id": "c4",
        "type": "group",
        "name": "Gamma",
        "participants": [{"user": "u1", "role": "admin"}],
        "is_active": True,
        "updated_at": STAMP,
    },
]

MESSAGES = [
    {"_id": "m1", "chat": "c1", "sender": "u1", "created_at": STAMP, "read_by": [], "is_deleted": False},
    {
        "_id": "m2",
        "chat": "c1",
        "sender": "u2",
        "created_at": STAMP + timedelta(minutes=1),
        "read_by": [{"user": "u1", "read_at": STAMP}],
        "is_deleted": False,
    },
    {
        "_id": "m3",
        "chat": "c1",
        "sender": "u2",
        "created_at": STAMP + timedelta(minutes=2),
        "read_by": [],
        "is_deleted": True,
    },
    {
        "_id": "m4",
        "chat": "c2",
        "sender": "u3",
        "created_at": STAMP + timedelta(minutes=3),
        "read_by": [],
        "is_deleted": False,
    },
]

PARITY_CASES = [
    ("chats", {"participants.user": "u1", "is_active": True}, [("updated_at", -1), ("_id", 1)], 0, 0),
    (
        "chats",
        {
            "participants.user": "u1",
            "is_active": True,
            "type": "group",
            "name": {"$regex": "A$", "$options": "i"},
        },
        [("name", 1), ("_id", 1)],
        0,
        0,
    ),
    ("chats", {"pair_key": "u1|u3", "is_active": True}, None, 0, 0),
    ("chats", {"_id": {"$in": ["c1", "c3", "zz"]}}, [("_id", 1)], 0, 0),
    ("chats", {"participants.user": {"$ne": "u2"}}, [("_id", 1)], 0, 0),
    ("chats", {"participants.user": {"$in": ["u2", "u3"]}}, [("_id", 1)], 0, 0),
    ("chats", {"pair_key": {"$exists": False}}, [("_id", 1)], 0, 0),
    ("chats", {"$or": [{"type": "individual"}, {"name": "beta"}]}, [("_id", 1)], 0, 0),
    ("chats", {"updated_at": {"$gte": STAMP + timedelta(minutes=2)}}, [("updated_at", 1)], 0, 0),
    (
        "messages",
        {
            "chat": {"$in": ["c1", "c2"]},
            "is_deleted": False,
            "sender": {"$ne": "u1"},
            "read_by.user": {"$ne": "u1"},
        },
        [("_id", 1)],
        0,
        0,
    ),
    ("messages", {"chat": "c1", "is_deleted": False}, [("created_at", -1), ("_id", -1)], 1, 1),
    ("messages", {"chat": "c1"}, [("created_at", -1), ("_id", -1)], 0, 2),
]


class TestMemoryParity:
    """
    Verifies: both adapters answer the criteria the services send the same way.

    Why it matters: switching DOCUMENT_STORE_BACKEND must not change what
    a chat listing, unread count or message page returns.
    """

    @pytest.fixture
    def stores(self, store):
        memory = MemoryDocumentStore()
        for collection, documents in (("chats", CHATS), ("messages", MESSAGES)):
            for document in documents:
                run(store.insert_one, collection, document)
                run(memory.insert_one, collection, document)
        return store, memory

    @pytest.mark.parametrize("collection,criteria,sort,skip,limit", PARITY_CASES)
    def test_find_and_count_agree(self, stores, collection, criteria, sort, skip, limit):
        orm, memory = stores

        found = run(orm.find, collection, criteria, sort=sort, skip=skip, limit=limit)
        expected = run(memory.find, collection, criteria, sort=sort, skip=skip, limit=limit)

        assert [document["_id"] for document in found] == [document["_id"] for document in expected]
        assert run(orm.count, collection, criteria) == run(memory.count, collection, criteria)
