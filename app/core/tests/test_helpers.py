"""
Tests for core.helpers.
"""

import re

import pytest

from core.helpers import new_object_id, normalize_pagination, parse_bool


class TestNewObjectId:
    def test_shape(self):
        assert re.fullmatch(r"[0-9a-f]{24}", new_object_id())

    def test_unique_within_process(self):
        ids = [new_object_id() for _ in range(200)]

        assert len(set(ids)) == 200

    def test_timestamp_prefix(self):
        """
        Why it matters: stores use _id as the tie-break for equal
        timestamps, so the leading bytes must be the creation second.
        """
        assert int(new_object_id()[:8], 16) > 0x60000000


class TestNormalizePagination:
    @pytest.mark.parametrize(
        "page,limit,expected",
        [
            ("2", "20", (2, 20)),
            (None, None, (1, 50)),
            ("abc", "xyz", (1, 50)),
            ("0", "-5", (1, 50)),
            ("3", "500", (3, 100)),
        ],
    )
    def test_coercion(self, page, limit, expected):
        assert normalize_pagination(page, limit) == expected

    def test_custom_bounds(self):
        assert normalize_pagination(1, 30, default_limit=10, max_limit=25) == (1, 25)


class TestParseBool:
    @pytest.mark.parametrize("value", ["1", "true", "True", " yes ", "on", True])
    def test_truthy(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "false", "no", "", "maybe", False])
    def test_falsy(self, value):
        assert parse_bool(value) is False

    def test_default_for_none(self):
        assert parse_bool(None, default=True) is True
