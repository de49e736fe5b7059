"""Index and constraint creation ahead of the data load.

Schema problems never abort a run: "already exists" failures count as existing and
anything else is logged and counted as failed. Connectivity failures still propagate,
since they mean the store itself is gone.

Constraints go first. Neo4j backs every uniqueness constraint with its own index and
refuses a constraint over a key that already has a plain index, so plain indexes are
skipped for keys a constraint already covers.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Set, Tuple

from loguru import logger

from csvgraph.loading.csv_source import CONSTRAINTS_FILE, INDEXES_FILE, CsvSource
from csvgraph.loading.encoder import quote_identifier
from csvgraph.storage.errors import AlreadyExistsError, StatementError
from csvgraph.storage.graph_client import GraphHandle, GraphStoreClient
from csvgraph.storage.schemas import ConstraintSpec, IndexSpec, SchemaCounts, SchemaReport


def _props(var: str, properties: Sequence[str]) -> str:
    return ", ".join(f"{var}.{quote_identifier(p)}" for p in properties)


def index_statement(label: str, properties: Sequence[str]) -> str:
    """``CREATE INDEX`` over one or more properties of a label."""
    return f"CREATE INDEX FOR (n:{quote_identifier(label)}) ON ({_props('n', properties)})"


def unique_constraint_statement(label: str, properties: Sequence[str]) -> str:
    """Node uniqueness constraint; composite keys use a single statement."""
    lbl = quote_identifier(label)
    if len(properties) == 1:
        return f"CREATE CONSTRAINT FOR (n:{lbl}) REQUIRE n.{quote_identifier(properties[0])} IS UNIQUE"
    return f"CREATE CONSTRAINT FOR (n:{lbl}) REQUIRE ({_props('n', properties)}) IS UNIQUE"


class SchemaSetup:
    """Creates id indexes, descriptor indexes, supporting indexes and constraints."""

    def __init__(
        self,
        client: GraphStoreClient,
        handle: GraphHandle,
        source: CsvSource,
        *,
        create_supporting_indexes: bool = True,
    ):
        self.client = client
        self.handle = handle
        self.source = source
        self.create_supporting = create_supporting_indexes
        self._backed: Set[Tuple[str, Tuple[str, ...]]] = set()

    def _apply(self, query: str, counts: SchemaCounts, what: str) -> bool:
        """Run one schema statement; True when the object is in place afterwards."""
        logger.info(f"  Creating {what}: {query}")
        try:
            self.client.execute(self.handle, query)
        except AlreadyExistsError:
            counts.existing += 1
        except StatementError as e:
            counts.failed += 1
            logger.error(f"  Error creating {what}: {e}")
            return False
        else:
            counts.created += 1
        return True

    def is_backed(self, label: str, properties: Sequence[str]) -> bool:
        """Whether a uniqueness constraint on exactly this key is in place."""
        return (label, tuple(properties)) in self._backed

    def _skip_backed(self, label: str, properties: Sequence[str], counts: SchemaCounts) -> bool:
        if not self.is_backed(label, properties):
            return False
        logger.debug(f"  {label}({', '.join(properties)}) is backed by its constraint index")
        counts.skipped += 1
        return True

    def _index_specs(self) -> Optional[List[IndexSpec]]:
        rows = self.source.read_descriptor(INDEXES_FILE)
        return None if rows is None else [IndexSpec.from_row(r) for r in rows]

    def _constraint_specs(self) -> Optional[List[ConstraintSpec]]:
        rows = self.source.read_descriptor(CONSTRAINTS_FILE)
        return None if rows is None else [ConstraintSpec.from_row(r) for r in rows]

    def create_id_indexes(self, labels: Iterable[str]) -> SchemaCounts:
        """One ``id`` index per node label."""
        counts = SchemaCounts()
        logger.info("Creating ID indexes for all node labels...")
        for label in sorted(set(labels)):
            if self._skip_backed(label, ["id"], counts):
                continue
            self._apply(index_statement(label, ["id"]), counts, f"ID index on {label}.id")
        if counts.created:
            logger.info(f"Created {counts.created} ID indexes")
        else:
            logger.info("  No new ID indexes created")
        return counts

    def create_indexes(self, specs: Optional[List[IndexSpec]]) -> SchemaCounts:
        """Indexes from ``indexes.csv``, one per (label, property) pair."""
        counts = SchemaCounts()
        if specs is None:
            logger.warning(f"No {INDEXES_FILE} file found, skipping index creation")
            return counts

        logger.info("Creating indexes from CSV...")
        for spec in specs:
            reason = spec.skip_reason
            if reason:
                logger.debug(f"  Skipping index row {spec.labels}/{spec.properties}: {reason}")
                counts.skipped += 1
                continue
            for label in spec.labels:
                for prop in spec.properties:
                    if self._skip_backed(label, [prop], counts):
                        continue
                    self._apply(index_statement(label, [prop]), counts, f"index on {label}.{prop}")

        logger.info(
            f"Created {counts.created} indexes from CSV "
            f"({counts.existing} existing, {counts.skipped} skipped, {counts.failed} failed)"
        )
        return counts

    def create_supporting_indexes(self, specs: Optional[List[ConstraintSpec]]) -> SchemaCounts:
        """Plain composite index for UNIQUE node keys left without a constraint.

        Keys whose constraint is in place already have the constraint's own index.
        """
        counts = SchemaCounts()
        if not specs:
            return counts

        logger.info("Creating supporting indexes for constraints...")
        for spec in specs:
            if not spec.is_complete or not spec.is_unique or spec.entity_type != "NODE":
                continue
            for label in spec.labels:
                if self._skip_backed(label, spec.properties, counts):
                    continue
                self._apply(
                    index_statement(label, spec.properties),
                    counts,
                    f"supporting index for {label}({', '.join(spec.properties)})",
                )
        if counts.created:
            logger.info(f"Created {counts.created} supporting indexes")
        return counts

    def create_constraints(self, specs: Optional[List[ConstraintSpec]]) -> SchemaCounts:
        """UNIQUE node constraints from ``constraints.csv``; other kinds are skipped."""
        counts = SchemaCounts()
        if specs is None:
            logger.warning(f"No {CONSTRAINTS_FILE} file found, skipping constraint creation")
            return counts
        if not specs:
            logger.info("  No constraints to create")
            return counts

        logger.info("Creating constraints...")
        for spec in specs:
            if not spec.is_complete:
                counts.skipped += 1
                continue
            for label in spec.labels:
                if not spec.is_unique or spec.entity_type != "NODE":
                    logger.warning(
                        f"  Constraint type '{spec.constraint_type}' for entity type "
                        f"'{spec.entity_type}' not supported, skipping {label}{spec.properties}"
                    )
                    counts.skipped += 1
                    continue
                if self._apply(
                    unique_constraint_statement(label, spec.properties),
                    counts,
                    f"UNIQUE constraint on {label}({', '.join(spec.properties)})",
                ):
                    self._backed.add((label, tuple(spec.properties)))

        if counts.created:
            logger.info(f"Created {counts.created} constraints")
        if counts.skipped:
            logger.warning(f"Skipped {counts.skipped} constraints")
        return counts

    def run(self, node_labels: Iterable[str]) -> SchemaReport:
        """Create the whole schema: constraints, then the indexes they do not cover."""
        report = SchemaReport()
        constraint_specs = self._constraint_specs()
        report.constraints = self.create_constraints(constraint_specs)
        report.id_indexes = self.create_id_indexes(node_labels)
        report.indexes = self.create_indexes(self._index_specs())
        if self.create_supporting:
            report.supporting_indexes = self.create_supporting_indexes(constraint_specs)
        return report
