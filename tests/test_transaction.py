"""Tests for single-key optimistic transactions."""

import pytest

from treesync.errors import (
    MissingETagError,
    PreconditionFailedError,
    TransactionAlreadyCommittedError,
)
from treesync.store import Abort, Delete, Store, Update, json_codec

from conftest import FakeRestApi, etag_of


@pytest.fixture
def seeded_api():
    return FakeRestApi({"items": {"a": {"n": 1}}})


@pytest.fixture
def seeded_store(seeded_api):
    return Store(seeded_api, ["items"], json_codec())


class TestTransactionHandle:
    """Tests for the begin/commit transaction handle."""

    @pytest.mark.asyncio
    async def test_begin_reads_value_and_etag(self, seeded_store, seeded_api):
        """Test the handle exposes the read value and its etag."""
        transaction = await seeded_store.transaction("a")

        assert transaction.value == {"n": 1}
        assert transaction.etag == etag_of({"n": 1})
        assert seeded_api.calls[-1] == (
            "get",
            "items/a",
            {"shallow": False, "filter": None, "etag": True},
        )

    @pytest.mark.asyncio
    async def test_missing_etag_is_an_error(self, seeded_store, seeded_api):
        """Test a transaction never starts without an etag."""
        seeded_api.omit_etag = True

        with pytest.raises(MissingETagError):
            await seeded_store.transaction("a")

    @pytest.mark.asyncio
    async def test_commit_update_with_fresh_etag(self, seeded_store, seeded_api):
        """Test committing with an unchanged remote succeeds."""
        transaction = await seeded_store.transaction("a")

        result = await transaction.commit_update({"n": 2})

        assert result == {"n": 2}
        assert seeded_api.value_at("items/a") == {"n": 2}
        assert seeded_api.calls[-1][2]["if_match"] == transaction.etag

    @pytest.mark.asyncio
    async def test_commit_update_with_stale_etag(self, seeded_store, seeded_api):
        """Test committing after a concurrent write fails and keeps the remote value."""
        transaction = await seeded_store.transaction("a")
        await seeded_store.write("a", {"n": 100})

        with pytest.raises(PreconditionFailedError):
            await transaction.commit_update({"n": 2})

        assert seeded_api.value_at("items/a") == {"n": 100}

    @pytest.mark.asyncio
    async def test_commit_delete_with_stale_etag(self, seeded_store, seeded_api):
        """Test a stale conditional delete fails."""
        transaction = await seeded_store.transaction("a")
        await seeded_store.write("a", {"n": 100})

        with pytest.raises(PreconditionFailedError):
            await transaction.commit_delete()

        assert seeded_api.value_at("items/a") == {"n": 100}

    @pytest.mark.asyncio
    async def test_commit_delete(self, seeded_store, seeded_api):
        """Test a fresh conditional delete removes the entry."""
        transaction = await seeded_store.transaction("a")

        await transaction.commit_delete()

        assert seeded_api.value_at("items/a") is None

    @pytest.mark.asyncio
    async def test_single_commit(self, seeded_store):
        """Test a transaction can only be committed once."""
        transaction = await seeded_store.transaction("a")
        await transaction.commit_update({"n": 2})

        with pytest.raises(TransactionAlreadyCommittedError):
            await transaction.commit_delete()

        assert transaction.committed

    @pytest.mark.asyncio
    async def test_silent_commit_returns_none(self, seeded_store, seeded_api):
        """Test silent transactions don't decode an echo."""
        transaction = await seeded_store.transaction("a", silent=True)

        assert await transaction.commit_update({"n": 3}) is None
        assert seeded_api.value_at("items/a") == {"n": 3}


class TestRunTransaction:
    """Tests for callback-driven transactions."""

    @pytest.mark.asyncio
    async def test_update(self, seeded_store, seeded_api):
        """Test an Update outcome commits the new value."""
        result = await seeded_store.run_transaction("a", lambda v: Update({"n": v["n"] + 1}))

        assert result == {"n": 2}
        assert seeded_api.value_at("items/a") == {"n": 2}

    @pytest.mark.asyncio
    async def test_async_callback(self, seeded_store, seeded_api):
        """Test the callback may be a coroutine function."""

        async def bump(value):
            return Update({"n": value["n"] + 10})

        assert await seeded_store.run_transaction("a", bump) == {"n": 11}

    @pytest.mark.asyncio
    async def test_delete(self, seeded_store, seeded_api):
        """Test a Delete outcome removes the entry."""
        result = await seeded_store.run_transaction("a", lambda v: Delete())

        assert result is None
        assert seeded_api.value_at("items/a") is None

    @pytest.mark.asyncio
    async def test_abort(self, seeded_store, seeded_api):
        """Test an Abort outcome performs no remote mutation."""
        result = await seeded_store.run_transaction("a", lambda v: Abort())

        assert result is None
        assert seeded_api.mutations() == []
        assert seeded_api.value_at("items/a") == {"n": 1}

    @pytest.mark.asyncio
    async def test_create_missing_key(self, seeded_store, seeded_api):
        """Test a transaction on an absent key can create it."""
        seen = []

        def create(value):
            seen.append(value)
            return Update({"n": 0})

        result = await seeded_store.run_transaction("new", create)

        assert seen == [None]
        assert result == {"n": 0}
        assert seeded_api.value_at("items/new") == {"n": 0}

    @pytest.mark.asyncio
    async def test_lost_race_is_not_retried(self, seeded_store, seeded_api):
        """Test a precondition failure surfaces without a retry."""

        async def racing(value):
            await seeded_api.put({"n": 50}, "items/a")
            return Update({"n": value["n"] + 1})

        with pytest.raises(PreconditionFailedError):
            await seeded_store.run_transaction("a", racing)

        conditional = [c for c in seeded_api.mutations() if c[2].get("if_match")]
        assert len(conditional) == 1
        assert seeded_api.value_at("items/a") == {"n": 50}

    @pytest.mark.asyncio
    async def test_invalid_outcome(self, seeded_store):
        """Test an unsupported outcome is rejected."""
        with pytest.raises(TypeError):
            await seeded_store.run_transaction("a", lambda v: {"n": 5})
