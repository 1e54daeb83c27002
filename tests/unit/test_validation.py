"""
Unit tests for argument checks that run before the store is touched.
"""

from datetime import timedelta

import pytest

from jobstore.config import StorageOptions
from jobstore.db.schema import StorageSchema
from jobstore.errors import InvalidArgumentError
from jobstore.queue.providers import QueueProviderRegistry
from jobstore.transaction.write_batch import WriteBatch
from jobstore.types.job import JobState
from jobstore.validation import parse_job_id, require_queues, require_text


class UnusedProvider:
    def get_job_queue(self):
        raise AssertionError("queue should not be requested while recording")


@pytest.fixture
def batch() -> WriteBatch:
    """A batch whose session factory must never be used."""
    return WriteBatch(
        session_factory=None,
        schema=StorageSchema("unit"),
        options=StorageOptions(),
        queue_providers=QueueProviderRegistry(UnusedProvider()),
    )


class TestValidation:
    """Tests for the shared argument checks."""

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_require_text_rejects_blank(self, value):
        """Test missing identifiers."""
        with pytest.raises(InvalidArgumentError):
            require_text(value, "queue")

    def test_parse_job_id(self):
        """Test conversion of external job ids."""
        assert parse_job_id("42") == 42
        assert parse_job_id(7) == 7

    @pytest.mark.parametrize("job_id", [None, "", "abc"])
    def test_parse_job_id_rejects_invalid(self, job_id):
        """Test malformed job ids."""
        with pytest.raises(InvalidArgumentError):
            parse_job_id(job_id)

    def test_require_queues(self):
        """Test queue list checks."""
        assert require_queues(["a", "b"]) == ["a", "b"]
        assert require_queues("single") == ["single"]

        with pytest.raises(InvalidArgumentError, match="Queue array must be non-empty."):
            require_queues([])
        with pytest.raises(InvalidArgumentError):
            require_queues(None)


class TestWriteBatchArguments:
    """Tests that invalid mutations are rejected when recorded."""

    def test_new_batch_is_empty(self, batch: WriteBatch):
        assert len(batch) == 0

    def test_recording_does_not_touch_the_store(self, batch: WriteBatch):
        """Test that valid mutations are only queued."""
        batch.insert_to_list("list", "value")
        batch.increment_counter("counter")
        batch.add_to_queue("default", "1")

        assert len(batch) == 3

    def test_invalid_job_id(self, batch: WriteBatch):
        with pytest.raises(InvalidArgumentError):
            batch.expire_job("not-a-number", timedelta(hours=1))
        with pytest.raises(InvalidArgumentError):
            batch.persist_job(None)

        assert len(batch) == 0

    def test_negative_expiration(self, batch: WriteBatch):
        with pytest.raises(InvalidArgumentError):
            batch.expire_job("1", timedelta(seconds=-1))
        with pytest.raises(InvalidArgumentError):
            batch.increment_counter("counter", expire_in=timedelta(seconds=-1))

    def test_state_required(self, batch: WriteBatch):
        with pytest.raises(InvalidArgumentError):
            batch.set_job_state("1", None)
        with pytest.raises(InvalidArgumentError):
            batch.add_job_state("1", JobState(name=""))

    def test_queue_and_job_required(self, batch: WriteBatch):
        with pytest.raises(InvalidArgumentError):
            batch.add_to_queue("", "1")
        with pytest.raises(InvalidArgumentError):
            batch.add_to_queue("default", None)

    def test_trim_list_rejects_negative_bounds(self, batch: WriteBatch):
        with pytest.raises(InvalidArgumentError):
            batch.trim_list("list", -1, 3)

    def test_missing_keys(self, batch: WriteBatch):
        with pytest.raises(InvalidArgumentError):
            batch.add_to_set(None, "value")
        with pytest.raises(InvalidArgumentError):
            batch.add_to_set("key", None)
        with pytest.raises(InvalidArgumentError):
            batch.set_range_in_hash("key", None)
        with pytest.raises(InvalidArgumentError):
            batch.remove_hash("")

    def test_registry_required(self):
        with pytest.raises(InvalidArgumentError):
            WriteBatch(None, StorageSchema("unit"), StorageOptions(), None)
