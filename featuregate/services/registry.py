"""Feature Registry.

Entry point for callers: look features up by key, evaluate them, and apply
mutations. Features are cached in memory per registry instance:

- Cache: ``cachetools.TTLCache`` so that other processes' writes become
  visible once an entry expires
- Storage: the adapter, which is the source of truth for what is persisted

Unknown keys never fail a lookup. ``get`` returns a "ghost" feature that lives
only in the cache until a mutation writes it through the adapter.

Usage:
    from featuregate.services.registry import create_registry

    features = create_registry()
    features.register_group("beta_testers", lambda user: user.get("beta", False))

    features.enable_group("new-nav", "beta_testers")
    if features.is_enabled("new-nav", current_user):
        ...
"""

from __future__ import annotations

import random
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from cachetools import TTLCache
from featuregate.core.config import Settings, settings
from featuregate.core.database import create_db_engine
from featuregate.core.exceptions import ConfigurationError, StorageError, ValidationError
from featuregate.core.logging import get_logger
from featuregate.core.metrics import (
    feature_cache_hits_total,
    feature_cache_misses_total,
    feature_evaluations_total,
    feature_mutations_total,
)
from featuregate.models.feature import StorageLocation
from featuregate.services.adapters import Adapter, MemoryAdapter, RedisAdapter, SQLAlchemyAdapter
from featuregate.services.feature import Feature
from featuregate.services.gates import default_gates
from featuregate.services.groups import Group, GroupPredicate, GroupRegistry
from featuregate.services.targets import (
    ActorTarget,
    BooleanTarget,
    GroupTarget,
    PercentageOfActorsTarget,
    PercentageOfTimeTarget,
    actor_id_of,
    group_name_of,
    to_target,
)

logger = get_logger(__name__)

DEFAULT_CACHE_TTL = 60  # seconds
DEFAULT_CACHE_MAX_SIZE = 1000


class Registry:
    """Features backed by an adapter, with an instance-local cache.

    Features:
    - Ghost features for unknown keys (no write until mutated)
    - Persisted listing read straight from the adapter
    - Group registration for the groups gate
    - Cache statistics for monitoring
    """

    def __init__(
        self,
        adapter: Adapter,
        groups: Optional[GroupRegistry] = None,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        cache_max_size: int = DEFAULT_CACHE_MAX_SIZE,
        rng: Optional[Callable[[], float]] = None,
    ):
        """Initialize the registry.

        Args:
            adapter: Storage for features
            groups: Group lookup (a fresh GroupRegistry if omitted)
            cache_ttl: Seconds a feature stays cached before it is re-read
            cache_max_size: Maximum number of cached features
            rng: Random source in [0, 1) for the percentage-of-time gate
        """
        self.adapter = adapter
        self.groups = groups if groups is not None else GroupRegistry()
        self._rng = rng or random.random
        self._gates = default_gates(self.groups, self._rng)
        self._cache: TTLCache = TTLCache(maxsize=cache_max_size, ttl=cache_ttl)
        self._lock = threading.RLock()
        self._cache_stats = {"hits": 0, "misses": 0}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, key: str) -> Feature:
        """Return the feature for ``key``.

        Cached features are returned as-is. Otherwise the adapter is asked for
        stored gate values; a key with nothing stored yields a ghost feature
        that is cached but not written.

        Raises:
            ValidationError: key is blank
            StorageError: the adapter read failed
        """
        self._check_key(key)

        with self._lock:
            feature = self._cache.get(key)
            if feature is not None:
                self._cache_stats["hits"] += 1
                feature_cache_hits_total.inc()
                return feature
            self._cache_stats["misses"] += 1
            feature_cache_misses_total.inc()

        values = self.adapter.get(key)
        feature = self._build(key, values)
        if values is None:
            logger.debug("ghost_feature_created", feature=key)

        with self._lock:
            # Another thread may have loaded the same key meanwhile
            existing = self._cache.get(key)
            if existing is not None:
                return existing
            self._cache[key] = feature
        return feature

    def __getitem__(self, key: str) -> Feature:
        return self.get(key)

    def all(self) -> List[Feature]:
        """Persisted features only, in storage order."""
        return [self._materialize(key) for key in self.adapter.features()]

    def names(self) -> List[str]:
        """Keys of persisted features, in storage order."""
        return self.adapter.features()

    def is_persisted(self, feature: Union[Feature, str]) -> bool:
        """Whether the feature has been written to storage.

        Decided by the adapter listing, so a cached ghost feature is not
        persisted however long it has been in memory.
        """
        name = feature.name if isinstance(feature, Feature) else feature
        return name in self.adapter.features()

    def _materialize(self, key: str) -> Feature:
        with self._lock:
            feature = self._cache.get(key)
        if feature is not None and self._cache_is_current(feature):
            return feature
        feature = self._build(key, self.adapter.get(key))
        with self._lock:
            self._cache[key] = feature
        return feature

    @staticmethod
    def _cache_is_current(feature: Feature) -> bool:
        # A cached ghost must be re-read once the key shows up in storage
        return not feature.gate_values.is_empty

    def _build(self, key: str, values) -> Feature:
        return Feature(key, self.adapter, self._gates, values)

    @staticmethod
    def _check_key(key: Any) -> None:
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("Feature key must be a non-empty string")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def is_enabled(self, key: str, thing: Any = None, default: bool = False) -> bool:
        """Check if feature ``key`` is enabled for ``thing``.

        Storage failures are logged and answered with ``default``.

        Args:
            key: Feature key
            thing: Subject being evaluated (optional)
            default: Result when the feature cannot be loaded

        Returns:
            True if any gate of the feature is open
        """
        try:
            result = self.get(key).is_enabled(thing)
        except StorageError as e:
            feature_evaluations_total.labels("error").inc()
            logger.error("feature_evaluation_failed", feature=key, error=str(e))
            return default

        feature_evaluations_total.labels("enabled" if result else "disabled").inc()
        return result

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def enable(self, key: str, target: Any = True) -> bool:
        """Enable ``key`` for ``target`` (everyone by default)."""
        target = to_target(target)
        feature = self.get(key)
        result = feature.enable(target)
        feature_mutations_total.labels("enable", feature.gate_for(target).name).inc()
        return result

    def disable(self, key: str, target: Any = False) -> bool:
        """Disable ``key`` for ``target``; the default clears every gate."""
        target = to_target(target)
        feature = self.get(key)
        result = feature.disable(target)
        feature_mutations_total.labels("disable", feature.gate_for(target).name).inc()
        return result

    def enable_group(self, key: str, group: Any) -> bool:
        return self.enable(key, GroupTarget(group_name_of(group)))

    def disable_group(self, key: str, group: Any) -> bool:
        return self.disable(key, GroupTarget(group_name_of(group)))

    def enable_actor(self, key: str, actor: Any) -> bool:
        return self.enable(key, ActorTarget(actor_id_of(actor)))

    def disable_actor(self, key: str, actor: Any) -> bool:
        return self.disable(key, ActorTarget(actor_id_of(actor)))

    def enable_percentage_of_actors(self, key: str, percentage: int) -> bool:
        return self.enable(key, PercentageOfActorsTarget(percentage))

    def disable_percentage_of_actors(self, key: str) -> bool:
        return self.disable(key, PercentageOfActorsTarget(0))

    def enable_percentage_of_time(self, key: str, percentage: int) -> bool:
        return self.enable(key, PercentageOfTimeTarget(percentage))

    def disable_percentage_of_time(self, key: str) -> bool:
        return self.disable(key, PercentageOfTimeTarget(0))

    def enable_all(self, key: str) -> bool:
        return self.enable(key, BooleanTarget(True))

    def add(self, key: str) -> Feature:
        """Persist ``key`` without enabling anything."""
        feature = self.get(key)
        if feature.add():
            logger.info("feature_added", feature=key)
        feature_mutations_total.labels("add", "none").inc()
        return feature

    def remove(self, key: str) -> bool:
        """Delete ``key`` from storage and drop it from the cache."""
        self._check_key(key)
        removed = self.adapter.remove(key)
        self.invalidate(key)
        feature_mutations_total.labels("remove", "none").inc()
        if removed:
            logger.info("feature_removed", feature=key)
        return removed

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def register_group(self, name: str, predicate: GroupPredicate) -> Group:
        return self.groups.register(name, predicate)

    def group(self, name: str) -> Group:
        """Registered group called ``name``; raises GroupNotRegisteredError otherwise."""
        return self.groups.get(name)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or the whole cache when ``key`` is None."""
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)
        logger.debug("feature_cache_invalidated", feature=key or "*")

    def preload(self) -> int:
        """Load every persisted feature into the cache.

        Returns:
            Number of features cached
        """
        count = 0
        for key in self.adapter.features():
            feature = self._build(key, self.adapter.get(key))
            with self._lock:
                self._cache[key] = feature
            count += 1
        logger.info("feature_cache_warmed", count=count)
        return count

    def cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics for monitoring."""
        with self._lock:
            hits = self._cache_stats["hits"]
            misses = self._cache_stats["misses"]
            total = hits + misses
            return {
                "hits": hits,
                "misses": misses,
                "hit_rate": (hits / total * 100) if total > 0 else 0,
                "size": len(self._cache),
                "max_size": self._cache.maxsize,
                "ttl_seconds": self._cache.ttl,
            }


def create_adapter(config: Optional[Settings] = None) -> Adapter:
    """Build the adapter named by ``FEATUREGATE_ADAPTER``."""
    config = config or settings
    kind = config.FEATUREGATE_ADAPTER.lower()

    if kind == "memory":
        return MemoryAdapter()
    if kind == "sqlalchemy":
        location = StorageLocation(
            features_table=config.FEATURES_TABLE,
            gates_table=config.FEATURE_GATES_TABLE,
        )
        return SQLAlchemyAdapter(create_db_engine(config=config), location)
    if kind == "redis":
        return RedisAdapter.from_url(config.REDIS_URL, key_prefix=config.REDIS_KEY_PREFIX)
    raise ConfigurationError(f"Unknown adapter: {config.FEATUREGATE_ADAPTER}")


def create_registry(
    config: Optional[Settings] = None,
    adapter: Optional[Adapter] = None,
    groups: Optional[GroupRegistry] = None,
) -> Registry:
    """Build a registry from settings.

    The caller owns the returned instance and passes it to whatever needs
    feature checks.
    """
    config = config or settings
    adapter = adapter or create_adapter(config)
    registry = Registry(
        adapter,
        groups=groups,
        cache_ttl=config.FEATURE_CACHE_TTL,
        cache_max_size=config.FEATURE_CACHE_MAX_SIZE,
    )
    logger.info("feature_registry_created", adapter=adapter.name)
    return registry
