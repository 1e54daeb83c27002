"""
Integration tests for the storage facade and connection.
"""

import json
from datetime import timedelta

import pytest
from sqlalchemy import update

from jobstore.cancellation import CancellationToken
from jobstore.clock import utc_now
from jobstore.constants import LOCK_RESOURCE_PREFIX
from jobstore.errors import InvalidArgumentError, QueueProviderError
from jobstore.expiration import ExpirationSweeper
from jobstore.types import JobState, ServerContext


class StubQueue:
    def __init__(self):
        self.dequeued = []

    def enqueue(self, session, queue, job_id):
        raise AssertionError("not used")

    def dequeue(self, queues, cancellation):
        self.dequeued.append(list(queues))
        return "claimed"


class StubProvider:
    def __init__(self):
        self.queue = StubQueue()

    def get_job_queue(self):
        return self.queue


class TestJobStorage:
    """Tests for JobStorage."""

    def test_components(self, storage):
        """Test that the sweeper is the only background component."""
        components = storage.get_components()

        assert len(components) == 1
        assert isinstance(components[0], ExpirationSweeper)

    def test_str_hides_password(self, storage):
        assert "SQL job storage" in str(storage)
        assert "postgres:postgres@" not in str(storage)

    def test_schema_uses_prefix(self, storage):
        assert storage.schema.job.name == "test_job"
        assert storage.schema.job_queue.name == "test_job_queue"


class TestJobs:
    """Tests for job records and parameters."""

    def test_create_expired_job(self, connection):
        """Test that a new job carries its expiration and parameters."""
        created_at = utc_now().replace(microsecond=0)

        job_id = connection.create_expired_job(
            '{"type": "Mailer", "method": "Send"}',
            '["hello"]',
            {"CurrentCulture": "en-US", "RetryCount": "0"},
            created_at,
            timedelta(hours=1),
        )

        data = connection.get_job_data(job_id)
        assert data.job_id == job_id
        assert data.invocation_data == '{"type": "Mailer", "method": "Send"}'
        assert data.arguments == '["hello"]'
        assert data.state_name is None
        assert data.created_at == created_at
        assert data.expire_at == created_at + timedelta(hours=1)
        assert connection.get_job_parameter(job_id, "CurrentCulture") == "en-US"
        assert connection.get_job_parameter(job_id, "RetryCount") == "0"

    def test_create_expired_job_without_parameters(self, connection):
        job_id = connection.create_expired_job("{}", "[]", {}, utc_now(), timedelta(hours=1))

        assert connection.get_job_data(job_id) is not None

    def test_create_expired_job_validates(self, connection):
        with pytest.raises(InvalidArgumentError):
            connection.create_expired_job(None, "[]", {}, utc_now(), timedelta(hours=1))
        with pytest.raises(InvalidArgumentError):
            connection.create_expired_job("{}", "[]", None, utc_now(), timedelta(hours=1))

    def test_missing_job(self, connection):
        assert connection.get_job_data("9999") is None
        assert connection.get_state_data("9999") is None

    def test_set_job_parameter_overwrites(self, connection, create_job):
        job_id = create_job()

        connection.set_job_parameter(job_id, "RetryCount", "1")
        connection.set_job_parameter(job_id, "RetryCount", "2")

        assert connection.get_job_parameter(job_id, "RetryCount") == "2"
        assert connection.get_job_parameter(job_id, "Missing") is None

    def test_get_state_data(self, connection, create_job):
        """Test that the current state is returned, not the latest added."""
        job_id = create_job()
        batch = connection.create_write_batch()
        batch.set_job_state(job_id, JobState("Failed", "Exception", {"message": "boom"}))
        batch.add_job_state(job_id, JobState("Processing"))
        batch.commit()

        state = connection.get_state_data(job_id)

        assert state.name == "Failed"
        assert state.reason == "Exception"
        assert state.data == {"message": "boom"}

        data = connection.get_job_data(job_id)
        assert data.state_name == "Failed"


class TestSetsHashesCounters:
    """Tests for direct reads of sets, hashes and counters."""

    @pytest.fixture
    def scheduled(self, connection):
        batch = connection.create_write_batch()
        batch.add_to_set("schedule", "late", 30.0)
        batch.add_to_set("schedule", "early", 10.0)
        batch.add_to_set("schedule", "middle", 20.0)
        batch.commit()

    def test_lowest_score_in_range(self, scheduled, connection):
        assert connection.get_first_by_lowest_score_from_set("schedule", 0, 100) == "early"
        assert connection.get_first_by_lowest_score_from_set("schedule", 15, 100) == "middle"
        assert connection.get_first_by_lowest_score_from_set("schedule", 31, 100) is None

    def test_lowest_score_rejects_inverted_range(self, connection):
        with pytest.raises(InvalidArgumentError):
            connection.get_first_by_lowest_score_from_set("schedule", 10, 0)

    def test_empty_set(self, connection):
        assert connection.get_all_items_from_set("nothing") == set()

    def test_set_range_in_hash(self, connection):
        connection.set_range_in_hash("recurring-job:daily", {"cron": "0 0 * * *"})
        connection.set_range_in_hash("recurring-job:daily", {"cron": "@hourly", "queue": "default"})

        assert connection.get_all_entries_from_hash("recurring-job:daily") == {
            "cron": "@hourly",
            "queue": "default",
        }

    def test_missing_counter_is_zero(self, connection):
        assert connection.get_counter("stats:deleted") == 0


class TestServers:
    """Tests for server registration."""

    def test_announce_server(self, connection, schema, fetch_rows):
        connection.announce_server("server-1", ServerContext(worker_count=4, queues=["default"]))

        rows = fetch_rows(schema.server)
        assert [row.id for row in rows] == ["server-1"]
        data = json.loads(rows[0].data)
        assert data["worker_count"] == 4
        assert data["queues"] == ["default"]

    def test_announce_again_updates(self, connection, schema, fetch_rows):
        connection.announce_server("server-1", ServerContext(worker_count=4))
        connection.announce_server("server-1", ServerContext(worker_count=8))

        rows = fetch_rows(schema.server)
        assert len(rows) == 1
        assert json.loads(rows[0].data)["worker_count"] == 8

    def test_heartbeat_and_timeout(self, connection, schema, session_factory, fetch_rows):
        """Test that only servers without a recent heartbeat are removed."""
        connection.announce_server("stale", ServerContext(worker_count=1))
        connection.announce_server("alive", ServerContext(worker_count=1))
        with session_factory.begin() as session:
            session.execute(
                update(schema.server)
                .where(schema.server.c.id == "stale")
                .values(last_heartbeat=utc_now() - timedelta(hours=2))
            )
        connection.heartbeat("alive")

        removed = connection.remove_timed_out_servers(timedelta(minutes=5))

        assert removed == 1
        assert [row.id for row in fetch_rows(schema.server)] == ["alive"]

    def test_remove_server(self, connection, schema, fetch_rows):
        connection.announce_server("server-1", ServerContext(worker_count=1))

        connection.remove_server("server-1")

        assert fetch_rows(schema.server) == []


class TestCoordination:
    """Tests for locks and job fetching through the connection."""

    def test_lock_resource_is_prefixed(self, connection, schema, fetch_rows):
        with connection.acquire_distributed_lock("recurring-jobs", timedelta(seconds=1)):
            rows = fetch_rows(schema.lock)
            assert [row.resource for row in rows] == [f"{LOCK_RESOURCE_PREFIX}recurring-jobs"]

    def test_fetch_next_job(self, connection, create_job):
        job_id = create_job()
        batch = connection.create_write_batch()
        batch.add_to_queue("default", job_id)
        batch.commit()

        with connection.fetch_next_job(["default"], CancellationToken()) as fetched:
            assert fetched.job_id == job_id
            fetched.acknowledge()

    def test_fetch_uses_registered_provider(self, connection, storage):
        provider = StubProvider()
        storage.queue_providers.add(provider, ["external"])

        assert connection.fetch_next_job(["external"], CancellationToken()) == "claimed"
        assert provider.queue.dequeued == [["external"]]

    def test_fetch_across_providers_fails(self, connection, storage):
        """Test that queues served by different providers are rejected."""
        storage.queue_providers.add(StubProvider(), ["external"])

        with pytest.raises(QueueProviderError):
            connection.fetch_next_job(["default", "external"], CancellationToken())
