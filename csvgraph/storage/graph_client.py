"""Neo4j client used by the loader to execute statements against a graph."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Union

from loguru import logger
from neo4j import GraphDatabase, Session
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable, SessionExpired

from csvgraph.loading.encoder import quote_identifier
from csvgraph.storage.errors import (
    ConnectivityError,
    StoreError,
    store_error_from_message,
)
from csvgraph.storage.schemas import Statement, StatementCounters
from csvgraph.utils.abort import AbortSignal
from csvgraph.utils.config import DatabaseConfig


def _error_message(error: BaseException) -> str:
    """Server-reported message, falling back to the exception arguments."""
    message = getattr(error, "message", None)
    if message:
        return str(message)
    for arg in error.args:
        if isinstance(arg, str) and arg:
            return arg
    return str(error) or repr(error)


@dataclass(frozen=True)
class GraphHandle:
    """A selected graph (Neo4j database)."""

    name: str


class GraphStoreClient:
    """Thin wrapper over the Neo4j driver.

    Every call checks the shared abort signal first and never contacts the store once
    it is set. Failures are re-raised as classified ``StoreError`` subclasses; a
    connectivity-class failure also raises the abort signal.

    Attributes:
        uri: Neo4j connection URI
        user: Neo4j username
        driver: Neo4j driver instance
        abort_signal: Shared abort flag
    """

    def __init__(self, config: DatabaseConfig, abort_signal: Optional[AbortSignal] = None):
        """Initialize the client with configuration.

        Args:
            config: Database configuration
            abort_signal: Shared abort flag; a private one is created if omitted
        """
        self.uri = config.neo4j_uri
        self.user = config.neo4j_user
        self.password = config.neo4j_password
        self.default_graph = config.neo4j_database
        self.connection_timeout = config.connection_timeout
        self.max_connection_pool_size = config.max_connection_pool_size
        self.abort_signal = abort_signal or AbortSignal()
        self.driver = None
        self._connected = False

    def connect(self) -> None:
        """Establish connection to Neo4j.

        Raises:
            ConnectivityError: If the server cannot be reached
        """
        logger.info(f"Connecting to Neo4j at {self.uri}...")
        auth = (self.user, self.password) if self.user else None
        try:
            self.driver = GraphDatabase.driver(
                self.uri,
                auth=auth,
                max_connection_pool_size=self.max_connection_pool_size,
                connection_timeout=self.connection_timeout,
            )
            self.driver.verify_connectivity()
        except (Neo4jError, DriverError, OSError) as e:
            logger.error(f"Failed to connect to Neo4j: {e}")
            raise ConnectivityError(f"Failed to connect to Neo4j at {self.uri}: {e}") from e
        self._connected = True
        logger.info(f"Connected to Neo4j at {self.uri}")

    def close(self) -> None:
        """Close connection to Neo4j."""
        if self.driver:
            self.driver.close()
            self._connected = False
            logger.info("Closed Neo4j connection")

    def __enter__(self) -> "GraphStoreClient":
        self.connect()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def select_graph(self, name: Optional[str] = None) -> GraphHandle:
        return GraphHandle(name or self.default_graph)

    @contextmanager
    def session(self, handle: GraphHandle) -> Iterator[Session]:
        """Context manager for a Neo4j session on the given graph.

        Raises:
            RuntimeError: If not connected to database
        """
        if not self._connected or not self.driver:
            raise RuntimeError("Not connected to Neo4j. Call connect() first.")

        session = self.driver.session(database=handle.name)
        try:
            yield session
        finally:
            session.close()

    def _classify(self, error: BaseException, query: str) -> StoreError:
        if isinstance(error, (ServiceUnavailable, SessionExpired)):
            classified: StoreError = ConnectivityError(str(error), statement=query)
        else:
            classified = store_error_from_message(_error_message(error), statement=query)
        if isinstance(classified, ConnectivityError):
            logger.error(f"Connection error detected - Neo4j may be unavailable: {error}")
            self.abort_signal.set(f"connection error: {error}")
        return classified

    def execute(
        self,
        handle: GraphHandle,
        statement: Union[Statement, str],
        parameters: Optional[Dict[str, Any]] = None,
    ) -> StatementCounters:
        """Execute one statement and return its write counters.

        Raises:
            AbortedError: If the abort signal is set (the store is not contacted)
            ConnectivityError: On connection-class failures (abort signal is raised)
            AlreadyExistsError: When a schema object already exists
            StatementError: On any other statement failure
        """
        self.abort_signal.check()

        if isinstance(statement, Statement):
            query = statement.query
            params = statement.parameters if parameters is None else parameters
        else:
            query = statement
            params = parameters

        try:
            with self.session(handle) as session:
                summary = session.run(query, params or {}).consume()
        except (Neo4jError, DriverError, OSError) as e:
            raise self._classify(e, query) from e

        counters = summary.counters
        return StatementCounters(
            nodes_created=counters.nodes_created,
            relationships_created=counters.relationships_created,
            properties_set=counters.properties_set,
            indexes_added=counters.indexes_added,
            constraints_added=counters.constraints_added,
        )

    def query(
        self, handle: GraphHandle, query: str, parameters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Execute a read query and return records as dictionaries."""
        self.abort_signal.check()
        try:
            with self.session(handle) as session:
                result = session.run(query, parameters or {})
                return [dict(record) for record in result]
        except (Neo4jError, DriverError, OSError) as e:
            raise self._classify(e, query) from e

    def get_statistics(self, handle: GraphHandle) -> Dict[str, Any]:
        """Node counts per label combination and relationship counts per type."""
        nodes = self.query(
            handle, "MATCH (n) RETURN labels(n) AS labels, count(n) AS count ORDER BY count DESC"
        )
        relationships = self.query(
            handle,
            "MATCH ()-[r]->() RETURN type(r) AS type, count(r) AS count ORDER BY count DESC",
        )
        return {
            "nodes_by_labels": {":".join(row["labels"]): row["count"] for row in nodes},
            "relationships_by_type": {row["type"]: row["count"] for row in relationships},
            "total_nodes": sum(row["count"] for row in nodes),
            "total_relationships": sum(row["count"] for row in relationships),
        }

    def sample_nodes(self, handle: GraphHandle, label: str, limit: int = 3) -> List[Dict[str, Any]]:
        """Return up to ``limit`` nodes with the given label as property dicts."""
        rows = self.query(
            handle,
            f"MATCH (n:{quote_identifier(label)}) RETURN n LIMIT $limit",
            {"limit": limit},
        )
        return [dict(row["n"]) for row in rows]
