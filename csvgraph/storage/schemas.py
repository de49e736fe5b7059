"""Models for records, schema descriptors, statements and load results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

NODE_RESERVED_COLUMNS = frozenset({"id", "labels"})
EDGE_RESERVED_COLUMNS = frozenset({"source", "target", "type", "source_label", "target_label"})


class LoadMode(str, Enum):
    """How records are written."""

    CREATE = "create"
    MERGE = "merge"


class EntityKind(str, Enum):
    """Kind of CSV extract."""

    NODE = "node"
    EDGE = "edge"


class LoadPhase(str, Enum):
    """Orchestrator phases, in execution order."""

    INIT = "init"
    HEALTH_CHECK = "health_check"
    SCHEMA_SETUP = "schema_setup"
    LOAD_NODES = "load_nodes"
    LOAD_EDGES = "load_edges"
    DONE = "done"
    ABORTED = "aborted"


def _clean(value: Optional[str]) -> str:
    return "" if value is None else value


def normalize_property_key(key: str) -> str:
    """Collapse duplicated self-pairs such as ``Date:Date`` into ``Date``."""
    if ":" in key:
        parts = key.split(":")
        if len(parts) == 2 and parts[0] == parts[1]:
            return parts[0]
    return key


@dataclass
class NodeRecord:
    """One row of a ``nodes_<Label>.csv`` file."""

    identifier: str
    properties: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[Optional[str], Optional[str]]) -> "NodeRecord":
        properties = {
            key: value
            for key, value in ((k, _clean(v)) for k, v in row.items() if k is not None)
            if key not in NODE_RESERVED_COLUMNS and value != ""
        }
        return cls(identifier=_clean(row.get("id")), properties=properties)


@dataclass
class EdgeRecord:
    """One row of an ``edges_<RelType>.csv`` file."""

    source: str
    target: str
    source_label: str = ""
    target_label: str = ""
    properties: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[Optional[str], Optional[str]]) -> Optional["EdgeRecord"]:
        """Build a record, or return None when source or target is missing."""
        source = _clean(row.get("source"))
        target = _clean(row.get("target"))
        if not source or not target:
            return None

        properties: Dict[str, str] = {}
        for key, value in row.items():
            if key is None or key in EDGE_RESERVED_COLUMNS:
                continue
            value = _clean(value)
            if value == "":
                continue
            properties[normalize_property_key(key)] = value

        return cls(
            source=source,
            target=target,
            source_label=_clean(row.get("source_label")).strip(),
            target_label=_clean(row.get("target_label")).strip(),
            properties=properties,
        )


@dataclass
class Statement:
    """A Cypher statement plus its parameters."""

    query: str
    parameters: Optional[Dict[str, Any]] = None
    record_count: int = 1


@dataclass
class StatementCounters:
    """Write counters reported by the store for one statement."""

    nodes_created: int = 0
    relationships_created: int = 0
    properties_set: int = 0
    indexes_added: int = 0
    constraints_added: int = 0


def split_list(value: Optional[str]) -> List[str]:
    """Split a semicolon-delimited descriptor cell."""
    return [item.strip() for item in (value or "").split(";") if item.strip()]


class IndexSpec(BaseModel):
    """One row of ``indexes.csv``."""

    labels: List[str] = Field(default_factory=list)
    properties: List[str] = Field(default_factory=list)
    uniqueness: str = ""
    index_type: str = ""

    @field_validator("uniqueness", "index_type")
    @classmethod
    def upper(cls, v: str) -> str:
        return (v or "").strip().upper()

    @classmethod
    def from_row(cls, row: Mapping[str, Optional[str]]) -> "IndexSpec":
        return cls(
            labels=split_list(row.get("labels")),
            properties=split_list(row.get("properties")),
            uniqueness=_clean(row.get("uniqueness")),
            index_type=_clean(row.get("type")),
        )

    @property
    def skip_reason(self) -> Optional[str]:
        if not self.labels or not self.properties:
            return "missing labels or properties"
        if self.index_type == "LOOKUP":
            return "system lookup index"
        if self.uniqueness == "UNIQUE":
            return "unique index is handled by constraints"
        return None


class ConstraintSpec(BaseModel):
    """One row of ``constraints.csv``."""

    labels: List[str] = Field(default_factory=list)
    properties: List[str] = Field(default_factory=list)
    constraint_type: str = ""
    entity_type: str = "NODE"

    @field_validator("constraint_type", "entity_type")
    @classmethod
    def upper(cls, v: str) -> str:
        return (v or "").strip().upper()

    @classmethod
    def from_row(cls, row: Mapping[str, Optional[str]]) -> "ConstraintSpec":
        entity_type = row.get("entity_type")
        return cls(
            labels=split_list(row.get("labels")),
            properties=split_list(row.get("properties")),
            constraint_type=_clean(row.get("type")),
            entity_type=entity_type if entity_type else "NODE",
        )

    @property
    def is_unique(self) -> bool:
        return "UNIQUE" in self.constraint_type

    @property
    def is_complete(self) -> bool:
        return bool(self.labels and self.properties)


class SchemaCounts(BaseModel):
    """Outcome counts for one category of schema statements."""

    created: int = 0
    existing: int = 0
    skipped: int = 0
    failed: int = 0


class SchemaReport(BaseModel):
    """Outcome of schema setup."""

    id_indexes: SchemaCounts = Field(default_factory=SchemaCounts)
    indexes: SchemaCounts = Field(default_factory=SchemaCounts)
    supporting_indexes: SchemaCounts = Field(default_factory=SchemaCounts)
    constraints: SchemaCounts = Field(default_factory=SchemaCounts)


class FileLoadResult(BaseModel):
    """Outcome of loading one CSV file."""

    path: str
    kind: EntityKind
    name: str
    records_read: int = 0
    loaded: int = 0
    skipped: int = 0
    failed: int = 0
    bulk_batches: int = 0
    fallback_batches: int = 0
    duration: float = 0.0


class LoadSummary(BaseModel):
    """Result of a whole run; always produced, even after a fatal error."""

    graph_name: str
    phase: LoadPhase = LoadPhase.INIT
    success: bool = False
    error: Optional[str] = None
    label_mapping: Dict[str, str] = Field(default_factory=dict)
    schema_report: SchemaReport = Field(default_factory=SchemaReport)
    files: List[FileLoadResult] = Field(default_factory=list)
    nodes_created: int = 0
    relationships_created: int = 0
    statistics: Dict[str, Any] = Field(default_factory=dict)
    samples: List[Dict[str, Any]] = Field(default_factory=list)
    duration: float = 0.0

    def _total(self, kind: EntityKind, attr: str) -> int:
        return sum(getattr(f, attr) for f in self.files if f.kind is kind)

    @property
    def nodes_loaded(self) -> int:
        return self._total(EntityKind.NODE, "loaded")

    @property
    def nodes_failed(self) -> int:
        return self._total(EntityKind.NODE, "failed")

    @property
    def edges_loaded(self) -> int:
        return self._total(EntityKind.EDGE, "loaded")

    @property
    def edges_skipped(self) -> int:
        return self._total(EntityKind.EDGE, "skipped")

    @property
    def edges_failed(self) -> int:
        return self._total(EntityKind.EDGE, "failed")
