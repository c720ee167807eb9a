"""
Unit tests for correlation id helpers.
"""

import asyncio

import pytest

from hkz2m.correlation import (
    correlation_context,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def _clear_correlation_id():
    set_correlation_id(None)
    yield
    set_correlation_id(None)


class TestCorrelationContext:
    """Tests for correlation_context"""

    def test_generates_and_restores(self):
        with correlation_context() as corr_id:
            assert get_correlation_id() == corr_id
            assert len(corr_id) == 32

        assert get_correlation_id() is None

    def test_nested_scopes(self):
        with correlation_context("outer"):
            with correlation_context("inner"):
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == "outer"

    def test_generated_ids_are_unique(self):
        assert generate_correlation_id() != generate_correlation_id()

    @pytest.mark.asyncio
    async def test_tasks_inherit_id(self):
        with correlation_context("parent"):
            child = asyncio.create_task(self._read_id())

        assert await child == "parent"

    @staticmethod
    async def _read_id() -> str | None:
        return get_correlation_id()

