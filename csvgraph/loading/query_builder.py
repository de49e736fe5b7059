"""Cypher statement construction for node and edge batches.

Bulk statements use ``UNWIND $batch`` with list parameters. When a bulk statement
fails, the same batch is rebuilt as one statement per record with inline literals.
Both renderings share a ``ValueEncoder`` and the same Create/Merge semantics, so
either path leaves the graph in the same state.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from csvgraph.loading.encoder import ValueEncoder, quote_identifier
from csvgraph.loading.labels import LabelMapping, first_label, resolve
from csvgraph.storage.schemas import EdgeRecord, LoadMode, NodeRecord, Statement


class QueryBuilder:
    """Builds bulk and per-record fallback statements.

    Attributes:
        mode: Create (unconditional) or Merge (upsert on ``id``)
        encoder: Value encoding strategy for parameters and literals
        label_qualified_fallback: Match fallback edge endpoints by first label and id
    """

    def __init__(
        self,
        mode: LoadMode = LoadMode.CREATE,
        encoder: ValueEncoder | None = None,
        label_qualified_fallback: bool = False,
    ):
        self.mode = mode
        self.encoder = encoder or ValueEncoder()
        self.label_qualified_fallback = label_qualified_fallback

    @property
    def merge(self) -> bool:
        return self.mode is LoadMode.MERGE

    # ---------- parameters ----------

    def _properties(self, properties: Dict[str, str]) -> Dict[str, Any]:
        encoded = {}
        for key, raw in properties.items():
            value = self.encoder.parameter(raw)
            if value is not None:
                encoded[key] = value
        return encoded

    def _properties_literal(self, properties: Dict[str, str]) -> str:
        items = [
            f"{quote_identifier(key)}: {self.encoder.literal(raw)}"
            for key, raw in properties.items()
            if raw != ""
        ]
        return "{" + ", ".join(items) + "}"

    def node_parameters(self, record: NodeRecord) -> Dict[str, Any]:
        return {
            "id": self.encoder.identifier(record.identifier),
            "props": self._properties(record.properties),
        }

    def edge_parameters(self, record: EdgeRecord, mapping: LabelMapping) -> Dict[str, Any]:
        return {
            "source_id": self.encoder.identifier(record.source),
            "target_id": self.encoder.identifier(record.target),
            "source_label": first_label(resolve(mapping, record.source_label)),
            "target_label": first_label(resolve(mapping, record.target_label)),
            "props": self._properties(record.properties),
        }

    # ---------- bulk ----------

    def build_node_bulk(self, label: str, batch: Sequence[NodeRecord]) -> Statement:
        lbl = quote_identifier(label)
        if self.merge:
            query = f"UNWIND $batch AS row MERGE (n:{lbl} {{id: row.id}}) SET n += row.props"
        else:
            query = f"UNWIND $batch AS row CREATE (n:{lbl}) SET n.id = row.id, n += row.props"
        rows = [self.node_parameters(record) for record in batch]
        return Statement(query=query, parameters={"batch": rows}, record_count=len(rows))

    def build_edge_bulk(
        self, rel_type: str, batch: Sequence[EdgeRecord], mapping: LabelMapping
    ) -> Statement:
        # Endpoints are matched by id only: a node may carry several labels, and the
        # id index makes the label-free lookup cheap.
        rel = quote_identifier(rel_type)
        if self.merge:
            query = (
                "UNWIND $batch AS row "
                "MERGE (a {id: row.source_id}) "
                "MERGE (b {id: row.target_id}) "
                f"MERGE (a)-[r:{rel}]->(b) "
                "SET r += row.props"
            )
        else:
            query = (
                "UNWIND $batch AS row "
                "MATCH (a {id: row.source_id}) "
                "MATCH (b {id: row.target_id}) "
                f"CREATE (a)-[r:{rel}]->(b) "
                "SET r += row.props"
            )
        rows = [self.edge_parameters(record, mapping) for record in batch]
        return Statement(query=query, parameters={"batch": rows}, record_count=len(rows))

    # ---------- fallback ----------

    def build_node_fallback(self, label: str, record: NodeRecord) -> Statement:
        lbl = quote_identifier(label)
        node_id = self.encoder.identifier_literal(record.identifier)
        props = self._properties_literal(record.properties)
        verb = "MERGE" if self.merge else "CREATE"

        query = f"{verb} (n:{lbl} {{id: {node_id}}})"
        if props != "{}":
            query += f" SET n += {props}"
        return Statement(query=query)

    def _endpoint(self, var: str, raw_id: str, raw_label: str, mapping: LabelMapping) -> str:
        node_id = self.encoder.identifier_literal(raw_id)
        if self.label_qualified_fallback and raw_label:
            label = first_label(resolve(mapping, raw_label))
            if label:
                return f"({var}:{quote_identifier(label)} {{id: {node_id}}})"
        return f"({var} {{id: {node_id}}})"

    def build_edge_fallback(
        self, rel_type: str, record: EdgeRecord, mapping: LabelMapping
    ) -> Statement:
        rel = quote_identifier(rel_type)
        source = self._endpoint("a", record.source, record.source_label, mapping)
        target = self._endpoint("b", record.target, record.target_label, mapping)
        props = self._properties_literal(record.properties)
        set_clause = f" SET r += {props}" if props != "{}" else ""

        if self.merge:
            query = f"MERGE {source} MERGE {target} MERGE (a)-[r:{rel}]->(b){set_clause}"
        else:
            query = f"MATCH {source}, {target} CREATE (a)-[r:{rel}]->(b){set_clause}"
        return Statement(query=query)

    def build_node_fallbacks(self, label: str, batch: Sequence[NodeRecord]) -> List[Statement]:
        return [self.build_node_fallback(label, record) for record in batch]

    def build_edge_fallbacks(
        self, rel_type: str, batch: Sequence[EdgeRecord], mapping: LabelMapping
    ) -> List[Statement]:
        return [self.build_edge_fallback(rel_type, record, mapping) for record in batch]

