"""Feature and gate storage models.

Features live in one table keyed by name; gate values live in a second table
with one row per (feature, gate kind, value). Set-valued gates (actors,
groups) store one row per member, scalar gates store a single row.

Table names are deployment configuration, so the mapped classes are built
per storage location instead of being declared once at import time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Type

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base

DEFAULT_FEATURES_TABLE = "features"
DEFAULT_GATES_TABLE = "feature_gates"


@dataclass(frozen=True)
class StorageLocation:
    """Where the SQL adapter keeps features and their gates."""

    features_table: str = DEFAULT_FEATURES_TABLE
    gates_table: str = DEFAULT_GATES_TABLE


@dataclass
class FeatureModels:
    """Mapped classes bound to one storage location."""

    base: Any
    feature: Type[Any]
    gate: Type[Any]

    @property
    def metadata(self):
        return self.base.metadata


def build_models(location: StorageLocation = StorageLocation()) -> FeatureModels:
    """Create declarative models for the given table names.

    Each call gets its own declarative base, so two locations can be mapped
    side by side in one process.
    """
    Base = declarative_base()

    class FeatureRecord(Base):
        """A persisted feature.

        Attributes:
            key: Unique feature name
            created_at: When the feature was first persisted
            updated_at: When its gate set was last written
        """

        __tablename__ = location.features_table

        key = Column(String(255), primary_key=True)
        created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
        updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

        def __repr__(self):
            return f"<FeatureRecord(key='{self.key}')>"

    class GateRecord(Base):
        """One stored gate value of a feature."""

        __tablename__ = location.gates_table
        __table_args__ = (
            UniqueConstraint("feature_key", "key", "value", name=f"uq_{location.gates_table}_feature_key_value"),
            Index(f"ix_{location.gates_table}_feature_key", "feature_key"),
        )

        id = Column(Integer, primary_key=True, autoincrement=True)
        feature_key = Column(
            String(255),
            ForeignKey(f"{location.features_table}.key", ondelete="CASCADE"),
            nullable=False,
        )
        key = Column(String(255), nullable=False)
        value = Column(String(255), nullable=False)
        created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

        def __repr__(self):
            return f"<GateRecord(feature_key='{self.feature_key}', key='{self.key}', value='{self.value}')>"

    return FeatureModels(base=Base, feature=FeatureRecord, gate=GateRecord)
