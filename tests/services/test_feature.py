"""Unit tests for the Feature aggregate."""

from unittest.mock import patch

import pytest
from featuregate.core.exceptions import StorageError, ValidationError
from featuregate.services.adapters import MemoryAdapter
from featuregate.services.feature import Feature, FeatureState
from featuregate.services.gates import GateValues, default_gates
from featuregate.services.groups import GroupRegistry
from featuregate.services.targets import GroupTarget, PercentageOfTimeTarget
from featuregate.services.things import Thing


@pytest.fixture
def adapter():
    return MemoryAdapter()


@pytest.fixture
def feature(adapter, groups):
    return Feature("new-nav", adapter, default_gates(groups, rng=lambda: 0.5))


class TestFeatureEvaluation:
    """Tests for OR evaluation across gates."""

    def test_new_feature_is_off(self, feature, beta_user):
        assert feature.is_enabled() is False
        assert feature.is_enabled(beta_user) is False
        assert feature.state is FeatureState.OFF
        assert feature.enabled_gates == []

    def test_any_open_gate_enables(self, feature, beta_user, regular_user):
        feature.enable_actor("user-2")
        feature.enable_group("beta_testers")
        assert feature.is_enabled(beta_user) is True
        assert feature.is_enabled(regular_user) is True
        assert feature.is_enabled(Thing("user-3")) is False
        assert feature.state is FeatureState.CONDITIONAL
        assert sorted(feature.enabled_gate_names) == ["actors", "groups"]

    def test_boolean_gate_is_on_for_everyone(self, feature):
        feature.enable()
        assert feature.is_enabled() is True
        assert feature.is_enabled(Thing("anyone")) is True
        assert feature.is_on

    def test_full_percentage_counts_as_on(self, feature):
        feature.enable_percentage_of_actors(100)
        assert feature.state is FeatureState.ON
        assert feature.is_enabled(Thing("anyone")) is True
        assert feature.is_enabled() is False

    def test_percentage_of_time_uses_registry_rng(self, feature):
        feature.enable_percentage_of_time(60)
        assert feature.is_enabled() is True
        feature.enable(PercentageOfTimeTarget(40))
        assert feature.is_enabled() is False


class TestFeatureMutation:
    """Tests for enable/disable dispatch and persistence."""

    def test_enable_writes_through(self, feature, adapter):
        feature.enable()
        assert adapter.get("new-nav") == GateValues(boolean=True)

    def test_default_disable_clears_all_gates(self, feature, adapter, beta_user):
        feature.enable_group("beta_testers")
        feature.enable_actor(beta_user)
        feature.enable_percentage_of_actors(30)
        feature.disable()
        assert feature.gate_values == GateValues()
        assert adapter.get("new-nav") == GateValues()
        assert feature.is_enabled(beta_user) is False

    def test_targeted_disable_keeps_other_gates(self, feature):
        feature.enable_group("beta_testers")
        feature.enable_group("admins")
        feature.enable_actor("user-9")
        feature.disable_group("admins")
        assert feature.enabled_groups() == ["beta_testers"]
        assert feature.actors_value == {"user-9"}

    def test_raw_targets_are_coerced(self, feature):
        feature.enable("beta_testers")
        feature.enable(15)
        feature.enable(Thing("user-5"))
        assert feature.groups_value == {"beta_testers"}
        assert feature.percentage_of_actors_value == 15
        assert feature.actors_value == {"user-5"}

    def test_invalid_target_rejected(self, feature, adapter):
        with pytest.raises(ValidationError):
            feature.enable(101)
        with pytest.raises(ValidationError):
            feature.enable(None)
        assert adapter.features() == []

    def test_failed_write_leaves_feature_untouched(self, feature, adapter):
        feature.enable_group("beta_testers")
        with patch.object(adapter, "update", side_effect=StorageError("connection lost")) as update:
            with pytest.raises(StorageError):
                feature.enable(GroupTarget("admins"))
            assert update.call_count == 1
        assert feature.groups_value == {"beta_testers"}

    def test_reload_and_remove(self, feature, adapter):
        adapter.write("new-nav", GateValues(actors={"a"}))
        assert feature.reload().actors_value == {"a"}
        assert feature.remove() is True
        assert feature.gate_values == GateValues()
        assert adapter.get("new-nav") is None

    def test_name_is_required(self, adapter, groups):
        with pytest.raises(ValidationError):
            Feature("  ", adapter, default_gates(groups))

    def test_to_dict(self, feature):
        feature.enable_group("beta_testers")
        data = feature.to_dict()
        assert data["name"] == "new-nav"
        assert data["state"] == "conditional"
        assert data["gates"]["groups"] == ["beta_testers"]

    def test_feature_without_group_gate(self, adapter):
        feature = Feature("solo", adapter, default_gates(GroupRegistry())[:1])
        with pytest.raises(ValidationError):
            feature.enable_group("beta_testers")
