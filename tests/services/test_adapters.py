"""Tests for storage adapters."""

import json
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import redis
from featuregate.core.exceptions import StorageError, ValidationError
from featuregate.models.feature import StorageLocation
from featuregate.services.adapters import MemoryAdapter, RedisAdapter, SQLAlchemyAdapter
from featuregate.services.gates import GateValues
from featuregate.services.registry import Registry
from featuregate.services.things import Thing
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session


class TestMemoryAdapter:
    """Tests for the in-memory adapter."""

    def test_lists_in_insertion_order(self):
        adapter = MemoryAdapter()
        adapter.write("b", GateValues(boolean=True))
        adapter.add("a")
        adapter.write("b", GateValues())
        assert adapter.features() == ["b", "a"]

    def test_add_is_idempotent(self):
        adapter = MemoryAdapter()
        assert adapter.add("a") is True
        assert adapter.add("a") is False
        assert adapter.get("a") == GateValues()

    def test_remove(self):
        adapter = MemoryAdapter()
        adapter.write("a", GateValues(boolean=True))
        assert adapter.remove("a") is True
        assert adapter.remove("a") is False
        assert adapter.get("a") is None


@pytest.mark.storage
class TestSQLAlchemyAdapter:
    """Tests for the SQL adapter against SQLite."""

    def test_unknown_feature_reads_none(self, sql_adapter):
        assert sql_adapter.get("missing") is None
        assert sql_adapter.features() == []

    def test_write_and_read_full_gate_set(self, sql_adapter):
        values = GateValues(
            boolean=True,
            actors={"user-1", "user-2"},
            groups={"beta_testers"},
            percentage_of_actors=25,
            percentage_of_time=5,
        )
        sql_adapter.write("new-nav", values)
        assert sql_adapter.get("new-nav") == values
        assert sql_adapter.features() == ["new-nav"]

    def test_write_replaces_previous_gates(self, sql_adapter, sql_engine):
        sql_adapter.write("k", GateValues(actors={"a", "b"}, percentage_of_actors=10))
        sql_adapter.write("k", GateValues(actors={"c"}))

        assert sql_adapter.get("k") == GateValues(actors={"c"})
        with sql_engine.connect() as conn:
            count = conn.execute(text("SELECT COUNT(*) FROM feature_gates WHERE feature_key = 'k'")).scalar()
        assert count == 1

    def test_empty_write_still_persists_feature(self, sql_adapter):
        sql_adapter.write("k", GateValues())
        assert sql_adapter.features() == ["k"]
        assert sql_adapter.get("k") == GateValues()

    def test_add_and_remove(self, sql_adapter):
        assert sql_adapter.add("k") is True
        assert sql_adapter.add("k") is False
        sql_adapter.write("k", GateValues(groups={"g"}))
        assert sql_adapter.remove("k") is True
        assert sql_adapter.remove("k") is False
        assert sql_adapter.get("k") is None

    def test_custom_table_names(self, sql_engine):
        adapter = SQLAlchemyAdapter(sql_engine, StorageLocation("flipper_features", "flipper_gates"))
        adapter.create_tables()
        adapter.write("k", GateValues(boolean=True))

        tables = set(inspect(sql_engine).get_table_names())
        assert {"flipper_features", "flipper_gates"} <= tables
        assert "features" not in tables
        assert adapter.get("k") == GateValues(boolean=True)

    def test_missing_tables_raise_storage_error(self, sql_engine):
        adapter = SQLAlchemyAdapter(sql_engine)
        with pytest.raises(StorageError) as exc_info:
            adapter.write("k", GateValues(boolean=True))
        assert exc_info.value.__cause__ is not None
        with pytest.raises(StorageError):
            adapter.features()

    def test_update_applies_to_stored_values(self, sql_adapter):
        sql_adapter.write("k", GateValues(actors={"alice"}))
        result = sql_adapter.update("k", lambda current: replace(current, actors=current.actors | {"bob"}))

        assert result.actors == {"alice", "bob"}
        assert sql_adapter.get("k") == result

    def test_update_persists_new_feature(self, sql_adapter):
        sql_adapter.update("k", lambda current: replace(current, boolean=True))
        assert sql_adapter.features() == ["k"]
        assert sql_adapter.get("k") == GateValues(boolean=True)

    def test_failed_update_rolls_back(self, sql_adapter):
        sql_adapter.write("k", GateValues(actors={"alice"}))

        def reject(current):
            raise ValidationError("rejected")

        with pytest.raises(ValidationError):
            sql_adapter.update("k", reject)
        assert sql_adapter.get("k") == GateValues(actors={"alice"})

    def test_unparseable_row_raises_storage_error(self, sql_adapter, sql_engine, groups):
        sql_adapter.write("k", GateValues())
        with Session(sql_engine) as db:
            db.add(sql_adapter.models.gate(feature_key="k", key="percentage_of_actors", value="lots"))
            db.commit()

        with pytest.raises(StorageError):
            sql_adapter.get("k")
        assert Registry(sql_adapter, groups=groups).is_enabled("k", default=True) is True

    def test_registries_share_committed_gates(self, sql_adapter, groups):
        first = Registry(sql_adapter, groups=groups)
        second = Registry(sql_adapter, groups=groups)

        first.enable_actor("k", "alice")
        second.enable_actor("k", "bob")
        first.enable_actor("k", "carol")

        assert sql_adapter.get("k").actors == {"alice", "bob", "carol"}

    def test_registry_over_sql(self, sql_adapter, groups):
        registry = Registry(sql_adapter, groups=groups)
        registry.enable_group("new-nav", "beta_testers")

        # A second registry sees the persisted state
        other = Registry(sql_adapter, groups=groups)
        assert other.is_persisted("new-nav") is True
        assert other.is_enabled("new-nav", Thing("u", {"beta": True})) is True
        assert other.is_enabled("new-nav", Thing("u", {"beta": False})) is False


@pytest.mark.storage
class TestRedisAdapter:
    """Tests for the Redis adapter with a mocked client."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.pipeline.return_value = MagicMock()
        return client

    @pytest.fixture
    def adapter(self, client):
        return RedisAdapter(client, key_prefix="test")

    def test_features_decodes_members(self, adapter, client):
        client.zrange.return_value = [b"a", "b"]
        assert adapter.features() == ["a", "b"]
        client.zrange.assert_called_once_with("test:features", 0, -1)

    def test_get_parses_document(self, adapter, client):
        client.get.return_value = json.dumps(GateValues(groups={"g"}).to_dict()).encode()
        assert adapter.get("k") == GateValues(groups={"g"})
        client.get.assert_called_once_with("test:feature:k")

    def test_get_missing(self, adapter, client):
        client.get.return_value = None
        assert adapter.get("k") is None

    def test_write_uses_transactional_pipeline(self, adapter, client):
        pipe = client.pipeline.return_value
        adapter.write("k", GateValues(boolean=True))

        client.pipeline.assert_called_once_with(transaction=True)
        assert pipe.zadd.call_args.args[0] == "test:features"
        assert pipe.zadd.call_args.kwargs == {"nx": True}
        key, payload = pipe.set.call_args.args
        assert key == "test:feature:k"
        assert json.loads(payload)["boolean"] is True
        pipe.execute.assert_called_once()

    def test_add_and_remove_report_changes(self, adapter, client):
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [1, True]
        assert adapter.add("k") is True
        pipe.execute.return_value = [0, 1]
        assert adapter.remove("k") is False

    def test_redis_errors_become_storage_errors(self, adapter, client):
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        with pytest.raises(StorageError):
            adapter.write("k", GateValues(boolean=True))

        client.get.side_effect = redis.TimeoutError("slow")
        with pytest.raises(StorageError):
            adapter.get("k")

    def test_update_reads_stored_document(self, adapter, client):
        pipe = client.pipeline.return_value
        pipe.get.return_value = json.dumps(GateValues(actors={"bob"}).to_dict()).encode()

        result = adapter.update("k", lambda current: replace(current, actors=current.actors | {"carol"}))

        assert result.actors == {"bob", "carol"}
        pipe.watch.assert_called_with("test:feature:k")
        pipe.multi.assert_called_once()
        key, payload = pipe.set.call_args.args
        assert key == "test:feature:k"
        assert json.loads(payload)["actors"] == ["bob", "carol"]
        pipe.reset.assert_called_once()

    def test_update_retries_when_document_changes(self, adapter, client):
        pipe = client.pipeline.return_value
        pipe.get.return_value = None
        pipe.execute.side_effect = [redis.WatchError(), [1, True]]

        result = adapter.update("k", lambda current: replace(current, boolean=True))

        assert result == GateValues(boolean=True)
        assert pipe.watch.call_count == 2
        assert pipe.execute.call_count == 2

    def test_corrupt_document_raises_storage_error(self, adapter, client, groups):
        client.get.return_value = b"{not json"
        with pytest.raises(StorageError):
            adapter.get("k")
        assert Registry(adapter, groups=groups).is_enabled("k", default=True) is True

    def test_out_of_range_document_raises_storage_error(self, adapter, client):
        client.get.return_value = json.dumps({"percentage_of_actors": 250})
        with pytest.raises(StorageError):
            adapter.get("k")
