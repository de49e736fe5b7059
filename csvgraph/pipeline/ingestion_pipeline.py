"""End-to-end CSV graph load.

This module orchestrates the complete load workflow:
1. Input validation (directory, headers, label reconciliation)
2. Database health check
3. Schema setup (indexes and constraints)
4. Node files, then edge files, in batches with per-row fallback
"""

from __future__ import annotations

import time
from pathlib import Path
from types import TracebackType
from typing import Callable, Iterator, List, Optional

from loguru import logger

from csvgraph.loading.csv_source import (
    CsvSource,
    chunked,
    node_label_for,
    relationship_type_for,
)
from csvgraph.loading.encoder import ValueEncoder
from csvgraph.loading.labels import LabelMapping, reconcile
from csvgraph.loading.query_builder import QueryBuilder
from csvgraph.loading.schema_setup import SchemaSetup
from csvgraph.pipeline.progress import ProgressCounter
from csvgraph.storage.errors import (
    AbortedError,
    AlreadyExistsError,
    ConnectivityError,
    FileLoadError,
    LoaderError,
    StatementError,
)
from csvgraph.storage.graph_client import GraphHandle, GraphStoreClient
from csvgraph.storage.schemas import (
    EdgeRecord,
    EntityKind,
    FileLoadResult,
    LoadMode,
    LoadPhase,
    LoadSummary,
    NodeRecord,
    Statement,
    StatementCounters,
)
from csvgraph.utils.abort import AbortSignal
from csvgraph.utils.config import Config

HEALTH_READ_QUERY = "RETURN 1 AS test"
HEALTH_WRITE_QUERY = "CREATE (test:TestNode {id: 'health_check', timestamp: timestamp()}) RETURN test"
HEALTH_CLEANUP_QUERY = "MATCH (test:TestNode {id: 'health_check'}) DELETE test"

# Failures of a single data statement; the batch or row is retried or skipped.
# Constraint violations report "already exists" and land here too.
RECOVERABLE_ERRORS = (StatementError, AlreadyExistsError)


def endpoint_labels(bulk: Statement) -> str:
    """Distinct ``source->target`` label pairs of an edge batch, for diagnostics."""
    rows = (bulk.parameters or {}).get("batch", [])
    pairs = sorted(
        {
            (row["source_label"] or "?", row["target_label"] or "?")
            for row in rows
            if "source_label" in row
        }
    )
    return ", ".join(f"{source}->{target}" for source, target in pairs)


class IngestionPipeline:
    """Loads a directory of CSV extracts into one graph.

    Example:
        >>> pipeline = IngestionPipeline(config, graph_name="social")
        >>> summary = pipeline.run()
        >>> print(f"Loaded {summary.nodes_loaded} nodes")
    """

    def __init__(
        self,
        config: Config,
        client: Optional[GraphStoreClient] = None,
        graph_name: Optional[str] = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Application configuration
            client: Graph store client; when omitted one is created, connected and
                closed by ``run``
            graph_name: Target graph; defaults to ``database.neo4j_database``
        """
        self.config = config
        self.loader_config = config.loader
        self.graph_name = graph_name or config.database.neo4j_database

        self.client = client
        self._owns_client = client is None
        self.abort_signal: AbortSignal = (
            client.abort_signal if client is not None else AbortSignal()
        )

        self.source = CsvSource(self.loader_config.csv_dir)
        self.builder = QueryBuilder(
            mode=LoadMode.MERGE if self.loader_config.merge_mode else LoadMode.CREATE,
            encoder=ValueEncoder(self.loader_config.literal_mode),
            label_qualified_fallback=self.loader_config.label_qualified_fallback,
        )

        self.phase = LoadPhase.INIT
        self.label_mapping: LabelMapping = {}
        self._written = StatementCounters()

    # ---------- phases ----------

    def _enter(self, phase: LoadPhase) -> None:
        self.phase = phase
        logger.debug(f"Entering phase {phase.value}")

    def validate(self) -> LabelMapping:
        """Check the input directory before anything is written.

        Raises:
            CsvValidationError: Missing directory or required columns
            LabelValidationError: Edge labels without node files
        """
        self.source.ensure_exists()
        node_files = self.source.node_files()
        edge_files = self.source.edge_files()
        logger.info(
            f"Found {len(node_files)} node files and {len(edge_files)} edge files "
            f"in {self.source.csv_dir}"
        )
        if not node_files and not edge_files:
            logger.warning("No nodes_*.csv or edges_*.csv files found")

        self.source.validate_headers()

        logger.info("Validating labels between node and edge files...")
        self.label_mapping = reconcile(self.source.node_labels(), self.source.edge_labels())
        return self.label_mapping

    def _connect(self) -> GraphStoreClient:
        if self.client is None:
            self.client = GraphStoreClient(self.config.database, abort_signal=self.abort_signal)
            self.client.connect()
        return self.client

    def health_check(self, handle: GraphHandle) -> None:
        """Read probe (fatal on failure) followed by a write probe (warning only)."""
        client = self._connect()
        logger.info("Testing database connection...")
        try:
            client.execute(handle, HEALTH_READ_QUERY)
        except LoaderError as e:
            logger.error(f"Database connection test failed: {e}")
            raise
        logger.info("Database connection test successful")

        try:
            client.execute(handle, HEALTH_WRITE_QUERY)
            client.execute(handle, HEALTH_CLEANUP_QUERY)
            logger.info("Database write test successful")
        except RECOVERABLE_ERRORS as e:
            logger.warning(f"Database write test failed: {e}")

        if self.builder.merge:
            logger.warning("MERGE mode is enabled; large loads put extra strain on the database")

    # ---------- batches ----------

    def _execute(self, handle: GraphHandle, statement: Statement) -> None:
        assert self.client is not None
        counters = self.client.execute(handle, statement)
        self._written.nodes_created += counters.nodes_created
        self._written.relationships_created += counters.relationships_created
        self._written.properties_set += counters.properties_set

    def _write_fallback(
        self, handle: GraphHandle, statements: List[Statement], result: FileLoadResult
    ) -> int:
        loaded = 0
        for statement in statements:
            try:
                self._execute(handle, statement)
            except RECOVERABLE_ERRORS as e:
                result.failed += 1
                logger.error(f"  Row failed: {e}")
                logger.debug(f"  Failed statement: {statement.query}")
                if self.loader_config.fail_fast:
                    raise
                continue
            loaded += 1
        return loaded

    def _write_batch(
        self,
        handle: GraphHandle,
        bulk: Statement,
        fallbacks: Callable[[], List[Statement]],
        result: FileLoadResult,
    ) -> int:
        """Write one batch; on a statement failure retry it row by row.

        Returns:
            Number of records written successfully
        """
        self.abort_signal.check()
        start = time.time()
        try:
            self._execute(handle, bulk)
        except RECOVERABLE_ERRORS as e:
            logger.warning(
                f"  Batch of {bulk.record_count} records failed, falling back to "
                f"individual statements: {e}"
            )
            labels = endpoint_labels(bulk)
            if labels:
                logger.warning(f"  Endpoint labels in failed batch: {labels}")
            result.fallback_batches += 1
            loaded = self._write_fallback(handle, fallbacks(), result)
        else:
            result.bulk_batches += 1
            loaded = bulk.record_count

        result.loaded += loaded
        logger.debug(f"  Batch of {bulk.record_count} written in {time.time() - start:.2f}s")
        return loaded

    # ---------- files ----------

    def _load_node_file(
        self, handle: GraphHandle, path: Path, result: FileLoadResult, progress: ProgressCounter
    ) -> None:
        label = result.name
        records = (NodeRecord.from_row(row) for row in self.source.iter_rows(path))
        for batch in chunked(records, self.loader_config.batch_size):
            result.records_read += len(batch)
            loaded = self._write_batch(
                handle,
                self.builder.build_node_bulk(label, batch),
                lambda: self.builder.build_node_fallbacks(label, batch),
                result,
            )
            progress.update(processed=len(batch), loaded=loaded)

    def _edge_records(self, path: Path, result: FileLoadResult) -> Iterator[EdgeRecord]:
        for row in self.source.iter_rows(path):
            record = EdgeRecord.from_row(row)
            if record is None:
                result.skipped += 1
                continue
            yield record

    def _load_edge_file(
        self, handle: GraphHandle, path: Path, result: FileLoadResult, progress: ProgressCounter
    ) -> None:
        rel_type = result.name
        counted_skips = 0
        for batch in chunked(self._edge_records(path, result), self.loader_config.batch_size):
            result.records_read += len(batch)
            loaded = self._write_batch(
                handle,
                self.builder.build_edge_bulk(rel_type, batch, self.label_mapping),
                lambda: self.builder.build_edge_fallbacks(rel_type, batch, self.label_mapping),
                result,
            )
            progress.update(processed=len(batch) + result.skipped - counted_skips, loaded=loaded)
            counted_skips = result.skipped

        if result.skipped > counted_skips:
            progress.update(processed=result.skipped - counted_skips)
        result.records_read += result.skipped
        if result.skipped:
            logger.warning(f"  Skipped {result.skipped} rows without source or target")

    def _load_files(
        self,
        handle: GraphHandle,
        kind: EntityKind,
        paths: List[Path],
        summary: LoadSummary,
    ) -> None:
        unit = "nodes" if kind is EntityKind.NODE else "relationships"
        interval = self.loader_config.progress_interval
        total = self.source.count_all(paths) if interval > 0 else 0
        progress = ProgressCounter(unit, "records", total=total, interval=interval)
        load = self._load_node_file if kind is EntityKind.NODE else self._load_edge_file

        for path in paths:
            self.abort_signal.check()
            name = node_label_for(path) if kind is EntityKind.NODE else relationship_type_for(path)
            result = FileLoadResult(path=str(path), kind=kind, name=name)
            summary.files.append(result)
            logger.info(f"Loading {unit} from {path.name} as {name}...")

            start = time.time()
            try:
                load(handle, path, result, progress)
            except (ConnectivityError, AbortedError):
                raise
            except Exception as e:  # noqa: BLE001
                error = FileLoadError(path.name, e)
                self.abort_signal.set(str(error))
                raise error from e
            finally:
                result.duration = time.time() - start

            logger.info(
                f"Loaded {result.loaded} {unit} from {path.name} "
                f"({result.failed} failed, {result.skipped} skipped) in {result.duration:.2f}s"
            )

    def _collect_statistics(self, handle: GraphHandle, summary: LoadSummary) -> None:
        assert self.client is not None
        summary.statistics = self.client.get_statistics(handle)
        label = self.loader_config.stats_sample_label
        if label and self.loader_config.stats_sample_limit:
            summary.samples = self.client.sample_nodes(
                handle, label, self.loader_config.stats_sample_limit
            )

    # ---------- entry point ----------

    def run(self) -> LoadSummary:
        """Run every phase and return a summary.

        A fatal error stops the run, sets the abort signal and is reported in the
        returned summary (``success`` False, ``phase`` ABORTED); it is not raised.
        """
        start = time.time()
        summary = LoadSummary(graph_name=self.graph_name)
        self._written = StatementCounters()
        logger.info(f"Loading CSV files from {self.source.csv_dir} into graph '{self.graph_name}'")

        try:
            self._enter(LoadPhase.INIT)
            summary.label_mapping = dict(self.validate())

            self._enter(LoadPhase.HEALTH_CHECK)
            client = self._connect()
            handle = client.select_graph(self.graph_name)
            if self.loader_config.health_check:
                self.health_check(handle)

            self._enter(LoadPhase.SCHEMA_SETUP)
            setup = SchemaSetup(
                client,
                handle,
                self.source,
                create_supporting_indexes=self.loader_config.create_supporting_indexes,
            )
            summary.schema_report = setup.run(self.source.node_labels())

            self._enter(LoadPhase.LOAD_NODES)
            self._load_files(handle, EntityKind.NODE, self.source.node_files(), summary)

            self._enter(LoadPhase.LOAD_EDGES)
            self._load_files(handle, EntityKind.EDGE, self.source.edge_files(), summary)

            if self.loader_config.show_stats:
                self._collect_statistics(handle, summary)

            self._enter(LoadPhase.DONE)
            summary.success = True
        except LoaderError as e:
            logger.error(f"Load aborted during {self.phase.value}: {e}")
            self.abort_signal.set(str(e))
            summary.error = str(e)
            self.phase = LoadPhase.ABORTED
        except Exception as e:  # noqa: BLE001
            logger.exception(f"Unexpected error during {self.phase.value}: {e}")
            self.abort_signal.set(str(e))
            summary.error = str(e)
            self.phase = LoadPhase.ABORTED
        finally:
            summary.phase = self.phase
            summary.nodes_created = self._written.nodes_created
            summary.relationships_created = self._written.relationships_created
            summary.duration = time.time() - start
            if self._owns_client:
                self.close()

        if summary.success:
            logger.info(
                f"Load complete: {summary.nodes_loaded} nodes, {summary.edges_loaded} "
                f"relationships in {summary.duration:.2f}s"
            )
        return summary

    def close(self) -> None:
        """Close the client if this pipeline created it."""
        if self._owns_client and self.client is not None:
            self.client.close()
            self.client = None

    def __enter__(self) -> "IngestionPipeline":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
