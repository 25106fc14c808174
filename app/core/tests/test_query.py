"""
Tests for the document query language.

Verifies:
- Filter operators including dotted paths through arrays of sub-documents
- Update operators and their change detection
- Multi-key sorting with missing values
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from core.documents.query import (
    MISSING,
    apply_update,
    get_value,
    matches,
    normalize_sort,
    sort_documents,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def chat():
    return {
        "_id": "c1",
        "type": "group",
        "name": "Weekend Trip",
        "is_active": True,
        "participants": [
            {"user": "u1", "role": "admin"},
            {"user": "u2", "role": "member"},
        ],
        "tags": ["travel", "friends"],
        "updated_at": NOW,
    }


# =============================================================================
# Path helpers
# =============================================================================


class TestGetValue:
    def test_nested_path(self, chat):
        assert get_value(chat, "participants.0.user") == "u1"

    def test_missing_path(self, chat):
        assert get_value(chat, "description") is MISSING
        assert get_value(chat, "participants.5.user") is MISSING

    def test_missing_is_falsy(self):
        assert not MISSING


# =============================================================================
# Filters
# =============================================================================


class TestMatches:
    """
    Tests for matches().

    Verifies the operator subset the services rely on.
    """

    def test_empty_filter_matches_everything(self, chat):
        assert matches(chat, {})
        assert matches(chat, None)

    def test_equality_on_array_of_subdocuments(self, chat):
        """
        Why it matters: "participants.user" is how every membership query
        is expressed.
        """
        assert matches(chat, {"participants.user": "u2"})
        assert not matches(chat, {"participants.user": "u3"})

    def test_equality_against_array_element(self, chat):
        assert matches(chat, {"tags": "travel"})

    def test_booleans_do_not_equal_integers(self, chat):
        assert not matches(chat, {"is_active": 1})
        assert matches(chat, {"is_active": True})

    def test_ne_on_missing_field(self, chat):
        assert matches(chat, {"pair_key": {"$ne": "x"}})

    def test_ne_over_array(self, chat):
        assert not matches(chat, {"participants.user": {"$ne": "u1"}})
        assert matches(chat, {"participants.user": {"$ne": "u9"}})

    def test_ne_over_empty_array(self):
        """
        Why it matters: unread filters use read_by.user $ne reader on
        messages nobody has read yet.
        """
        assert matches({"read_by": []}, {"read_by.user": {"$ne": "u1"}})

    def test_in_and_nin(self, chat):
        assert matches(chat, {"_id": {"$in": ["c0", "c1"]}})
        assert not matches(chat, {"_id": {"$nin": ["c1"]}})

    def test_comparisons_on_datetimes(self, chat):
        assert matches(chat, {"updated_at": {"$gte": NOW, "$lt": NOW + timedelta(seconds=1)}})
        assert not matches(chat, {"updated_at": {"$gt": NOW}})

    def test_comparison_with_none_is_false(self):
        assert not matches({"edited_at": None}, {"edited_at": {"$lt": NOW}})

    def test_exists(self, chat):
        assert matches(chat, {"name": {"$exists": True}})
        assert matches(chat, {"pair_key": {"$exists": False}})

    def test_regex_with_options(self, chat):
        assert matches(chat, {"name": {"$regex": "trip", "$options": "i"}})
        assert not matches(chat, {"name": {"$regex": "trip"}})

    def test_compiled_pattern(self, chat):
        assert matches(chat, {"name": re.compile("^Week")})

    def test_all(self, chat):
        assert matches(chat, {"tags": {"$all": ["friends", "travel"]}})
        assert not matches(chat, {"tags": {"$all": ["friends", "work"]}})

    def test_unsupported_operator_is_rejected(self, chat):
        with pytest.raises(ValueError):
            matches(chat, {"participants": {"$size": 2}})

    def test_not(self, chat):
        assert matches(chat, {"type": {"$not": {"$eq": "individual"}}})

    def test_logical_operators(self, chat):
        assert matches(chat, {"$or": [{"type": "individual"}, {"is_active": True}]})
        assert not matches(chat, {"$and": [{"type": "group"}, {"is_active": False}]})
        assert matches(chat, {"$nor": [{"type": "individual"}]})

    def test_unsupported_operator_raises(self, chat):
        with pytest.raises(ValueError):
            matches(chat, {"name": {"$where": "1"}})


# =============================================================================
# Updates
# =============================================================================


class TestApplyUpdate:
    """
    Tests for apply_update().

    Verifies each operator and the returned change flag.
    """

    def test_set_nested(self, chat):
        assert apply_update(chat, {"$set": {"last_message.content": "hi"}})
        assert chat["last_message"] == {"content": "hi"}

    def test_set_same_value_reports_unchanged(self, chat):
        assert apply_update(chat, {"$set": {"name": "Weekend Trip"}}) is False

    def test_unset(self, chat):
        chat["pair_key"] = "u1:u2"

        assert apply_update(chat, {"$unset": {"pair_key": ""}})
        assert "pair_key" not in chat

    def test_inc_missing_starts_at_zero(self, chat):
        apply_update(chat, {"$inc": {"counter": 2}})

        assert chat["counter"] == 2

    def test_push_with_each(self, chat):
        apply_update(chat, {"$push": {"tags": {"$each": ["a", "b"]}}})

        assert chat["tags"][-2:] == ["a", "b"]

    def test_push_creates_array(self):
        message = {"_id": "m1"}

        apply_update(message, {"$push": {"read_by": {"user": "u1"}}})

        assert message["read_by"] == [{"user": "u1"}]

    def test_add_to_set_skips_existing(self, chat):
        assert apply_update(chat, {"$addToSet": {"tags": "travel"}}) is False

    def test_pull_by_subdocument_filter(self, chat):
        apply_update(chat, {"$pull": {"participants": {"user": "u2"}}})

        assert [p["user"] for p in chat["participants"]] == ["u1"]

    def test_pull_scalar(self, chat):
        apply_update(chat, {"$pull": {"tags": "travel"}})

        assert chat["tags"] == ["friends"]

    def test_pull_with_operator(self, chat):
        apply_update(chat, {"$pull": {"tags": {"$in": ["travel", "friends"]}}})

        assert chat["tags"] == []

    def test_replacement_document_rejected(self, chat):
        with pytest.raises(ValueError):
            apply_update(chat, {"name": "x"})

    def test_id_is_immutable(self, chat):
        with pytest.raises(ValueError):
            apply_update(chat, {"$set": {"_id": "other"}})

    def test_push_onto_scalar_raises(self, chat):
        with pytest.raises(ValueError):
            apply_update(chat, {"$push": {"name": "x"}})


# =============================================================================
# Sorting
# =============================================================================


class TestSorting:
    def test_normalize_sort_accepts_dict(self):
        assert normalize_sort({"a": 1, "b": -1}) == [("a", 1), ("b", -1)]

    def test_multi_key_sort(self):
        documents = [
            {"_id": "b", "updated_at": NOW},
            {"_id": "c", "updated_at": NOW + timedelta(minutes=1)},
            {"_id": "a", "updated_at": NOW},
        ]

        sort_documents(documents, [("updated_at", -1), ("_id", 1)])

        assert [d["_id"] for d in documents] == ["c", "a", "b"]

    def test_missing_values_sort_first_ascending(self):
        documents = [{"_id": "x", "n": 2}, {"_id": "y"}]

        sort_documents(documents, [("n", 1)])

        assert [d["_id"] for d in documents] == ["y", "x"]
