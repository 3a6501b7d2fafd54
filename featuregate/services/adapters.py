"""Storage adapters for features and their gate values.

Every adapter stores a feature's full ``GateValues`` snapshot in one write,
so a reader either sees the previous gate set or the new one, never a mix.
``update`` reads the stored snapshot and writes its replacement in the same
transaction, so concurrent mutations from other processes are not lost.

Adapters:
- MemoryAdapter: process-local dict, for tests and single-process tools
- SQLAlchemyAdapter: features + feature_gates tables (names configurable)
- RedisAdapter: sorted set of feature keys + one JSON document per feature

Usage:
    from featuregate.services.adapters import SQLAlchemyAdapter
    from featuregate.models import StorageLocation

    adapter = SQLAlchemyAdapter(engine, StorageLocation("flags", "flag_gates"))
    adapter.create_tables()
    adapter.write("new-nav", GateValues(boolean=True))
"""

from __future__ import annotations

import json
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, List, Optional

import redis
from featuregate.core.database import create_session_factory, transaction
from featuregate.core.exceptions import StorageError, ValidationError
from featuregate.core.logging import get_logger
from featuregate.core.metrics import storage_errors_total
from featuregate.models.feature import FeatureModels, StorageLocation, build_models
from featuregate.services.gates import GateValues
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = get_logger(__name__)

GateUpdate = Callable[[GateValues], GateValues]

# Stored data that no longer parses
_DECODE_ERRORS = (ValueError, TypeError, ValidationError)


class Adapter(ABC):
    """Persistence boundary for features."""

    name: str = "adapter"

    @abstractmethod
    def features(self) -> List[str]:
        """Keys of all persisted features, in storage order."""

    @abstractmethod
    def get(self, key: str) -> Optional[GateValues]:
        """Stored gate values for ``key``, or None if the feature is not persisted."""

    @abstractmethod
    def write(self, key: str, values: GateValues) -> None:
        """Persist ``key`` with exactly ``values``, atomically."""

    @abstractmethod
    def update(self, key: str, fn: GateUpdate) -> GateValues:
        """Atomically replace the gates of ``key`` with ``fn(current)``.

        ``current`` is the stored snapshot read inside the same transaction
        (empty if ``key`` is not persisted). Returns the stored result.
        """

    @abstractmethod
    def add(self, key: str) -> bool:
        """Persist ``key`` without changing its gates. Returns True if it was new."""

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Delete ``key`` and its gates. Returns True if it existed."""

    def _storage_error(self, operation: str, key: Optional[str], error: Exception) -> StorageError:
        storage_errors_total.labels(self.name, operation).inc()
        logger.error(
            "feature_storage_failed",
            adapter=self.name,
            operation=operation,
            feature=key,
            error=str(error),
            error_type=type(error).__name__,
        )
        target = f" '{key}'" if key else "s"
        return StorageError(f"{self.name} adapter failed to {operation} feature{target}: {error}")


class MemoryAdapter(Adapter):
    """Dict-backed adapter; keys keep insertion order."""

    name = "memory"

    def __init__(self):
        self._features: Dict[str, GateValues] = {}
        self._lock = threading.Lock()

    def features(self) -> List[str]:
        with self._lock:
            return list(self._features)

    def get(self, key: str) -> Optional[GateValues]:
        with self._lock:
            return self._features.get(key)

    def write(self, key: str, values: GateValues) -> None:
        with self._lock:
            self._features[key] = values

    def update(self, key: str, fn: GateUpdate) -> GateValues:
        with self._lock:
            current = self._features.get(key)
            updated = fn(current if current is not None else GateValues())
            self._features[key] = updated
            return updated

    def add(self, key: str) -> bool:
        with self._lock:
            if key in self._features:
                return False
            self._features[key] = GateValues()
            return True

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._features.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._features.clear()


class SQLAlchemyAdapter(Adapter):
    """Relational adapter.

    Features are rows in ``location.features_table``; gate values are rows in
    ``location.gates_table`` keyed by (feature_key, key, value). A write
    replaces all gate rows of the feature inside one transaction.
    """

    name = "sqlalchemy"

    def __init__(self, engine: Engine, location: StorageLocation = StorageLocation()):
        self.engine = engine
        self.location = location
        self.models: FeatureModels = build_models(location)
        self._session_factory = create_session_factory(engine)

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def create_tables(self) -> None:
        """Create the feature tables if they do not exist yet."""
        try:
            self.models.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise self._storage_error("create tables for", None, e) from e
        logger.info(
            "feature_tables_ready",
            features_table=self.location.features_table,
            gates_table=self.location.gates_table,
        )

    def features(self) -> List[str]:
        Feature = self.models.feature
        try:
            with self._session() as db:
                rows = db.query(Feature.key).order_by(Feature.created_at, Feature.key).all()
                return [row.key for row in rows]
        except SQLAlchemyError as e:
            raise self._storage_error("list", None, e) from e

    def _read_gates(self, db: Session, key: str) -> GateValues:
        Gate = self.models.gate
        rows = db.query(Gate.key, Gate.value).filter(Gate.feature_key == key).all()
        try:
            return GateValues.from_rows((row.key, row.value) for row in rows)
        except _DECODE_ERRORS as e:
            raise self._storage_error("decode", key, e) from e

    def _replace_gates(self, db: Session, feature: Any, key: str, values: GateValues) -> None:
        Gate = self.models.gate
        if feature is None:
            db.add(self.models.feature(key=key))
        else:
            feature.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)

        db.query(Gate).filter(Gate.feature_key == key).delete(synchronize_session=False)
        # Parent row must exist before gate rows reference it
        db.flush()
        for gate_key, value in values.to_rows():
            db.add(Gate(feature_key=key, key=gate_key, value=value))

    def get(self, key: str) -> Optional[GateValues]:
        Feature = self.models.feature
        try:
            with self._session() as db:
                if db.get(Feature, key) is None:
                    return None
                return self._read_gates(db, key)
        except SQLAlchemyError as e:
            raise self._storage_error("read", key, e) from e

    def write(self, key: str, values: GateValues) -> None:
        try:
            with self._session() as db, transaction(db):
                self._replace_gates(db, db.get(self.models.feature, key), key, values)
        except SQLAlchemyError as e:
            raise self._storage_error("write", key, e) from e

        logger.debug("feature_written", adapter=self.name, feature=key)

    def update(self, key: str, fn: GateUpdate) -> GateValues:
        try:
            with self._session() as db, transaction(db):
                # Row lock serializes concurrent updates of one feature
                feature = db.get(self.models.feature, key, with_for_update=True)
                current = self._read_gates(db, key) if feature is not None else GateValues()
                updated = fn(current)
                self._replace_gates(db, feature, key, updated)
        except SQLAlchemyError as e:
            raise self._storage_error("update", key, e) from e

        logger.debug("feature_written", adapter=self.name, feature=key)
        return updated

    def add(self, key: str) -> bool:
        Feature = self.models.feature
        try:
            with self._session() as db, transaction(db):
                if db.get(Feature, key) is not None:
                    return False
                db.add(Feature(key=key))
                return True
        except SQLAlchemyError as e:
            raise self._storage_error("add", key, e) from e

    def remove(self, key: str) -> bool:
        Feature = self.models.feature
        Gate = self.models.gate
        try:
            with self._session() as db, transaction(db):
                db.query(Gate).filter(Gate.feature_key == key).delete(synchronize_session=False)
                deleted = db.query(Feature).filter(Feature.key == key).delete(synchronize_session=False)
                return deleted > 0
        except SQLAlchemyError as e:
            raise self._storage_error("remove", key, e) from e


class RedisAdapter(Adapter):
    """Redis adapter.

    Layout:
        {prefix}:features        sorted set of feature keys, scored by first write time
        {prefix}:feature:{key}   JSON document of the feature's gate values

    Both keys are updated in a MULTI/EXEC pipeline.
    """

    name = "redis"

    def __init__(self, client: Any, key_prefix: str = "featuregate"):
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "featuregate") -> "RedisAdapter":
        return cls(redis.Redis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    @property
    def features_key(self) -> str:
        return f"{self.key_prefix}:features"

    def feature_key(self, key: str) -> str:
        return f"{self.key_prefix}:feature:{key}"

    @staticmethod
    def _decode(value: Any) -> str:
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def features(self) -> List[str]:
        try:
            members = self.client.zrange(self.features_key, 0, -1)
        except redis.RedisError as e:
            raise self._storage_error("list", None, e) from e
        return [self._decode(member) for member in members]

    def _parse(self, key: str, raw: Any) -> GateValues:
        try:
            return GateValues.from_dict(json.loads(self._decode(raw)))
        except _DECODE_ERRORS as e:
            raise self._storage_error("decode", key, e) from e

    def get(self, key: str) -> Optional[GateValues]:
        try:
            raw = self.client.get(self.feature_key(key))
        except redis.RedisError as e:
            raise self._storage_error("read", key, e) from e
        if raw is None:
            return None
        return self._parse(key, raw)

    def write(self, key: str, values: GateValues) -> None:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.zadd(self.features_key, {key: time.time()}, nx=True)
            pipe.set(self.feature_key(key), json.dumps(values.to_dict()))
            pipe.execute()
        except redis.RedisError as e:
            raise self._storage_error("write", key, e) from e

        logger.debug("feature_written", adapter=self.name, feature=key)

    def update(self, key: str, fn: GateUpdate) -> GateValues:
        document_key = self.feature_key(key)
        pipe = self.client.pipeline(transaction=True)
        try:
            while True:
                try:
                    pipe.watch(document_key)
                    raw = pipe.get(document_key)
                    current = self._parse(key, raw) if raw is not None else GateValues()
                    updated = fn(current)

                    pipe.multi()
                    pipe.zadd(self.features_key, {key: time.time()}, nx=True)
                    pipe.set(document_key, json.dumps(updated.to_dict()))
                    pipe.execute()
                    break
                except redis.WatchError:
                    # Another writer changed the document, read it again
                    logger.debug("feature_update_retried", adapter=self.name, feature=key)
        except redis.RedisError as e:
            raise self._storage_error("update", key, e) from e
        finally:
            pipe.reset()

        logger.debug("feature_written", adapter=self.name, feature=key)
        return updated

    def add(self, key: str) -> bool:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.zadd(self.features_key, {key: time.time()}, nx=True)
            pipe.set(self.feature_key(key), json.dumps(GateValues().to_dict()), nx=True)
            added, _ = pipe.execute()
        except redis.RedisError as e:
            raise self._storage_error("add", key, e) from e
        return bool(added)

    def remove(self, key: str) -> bool:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.zrem(self.features_key, key)
            pipe.delete(self.feature_key(key))
            removed, _ = pipe.execute()
        except redis.RedisError as e:
            raise self._storage_error("remove", key, e) from e
        return bool(removed)
