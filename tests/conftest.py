"""Shared fixtures: an in-memory graph client and CSV file helpers."""

from __future__ import annotations

import csv
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from csvgraph.loading.encoder import decode_literal
from csvgraph.storage.errors import ConnectivityError, StoreError
from csvgraph.storage.graph_client import GraphHandle
from csvgraph.storage.schemas import Statement, StatementCounters
from csvgraph.utils.abort import AbortSignal
from csvgraph.utils.config import Config

_NODE_LABEL_RE = re.compile(r"\(n:(`[^`]+`|\w+)")
_REL_TYPE_RE = re.compile(r"-\[r:(`[^`]+`|\w+)\]")
_KEY_RE = re.compile(r"`(?:[^`]|``)*`|[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"-?[0-9.][0-9.eE+-]*")
_INT_RE = re.compile(r"-?[0-9]+")


def _parse_value(text: str, i: int) -> Tuple[Any, int]:
    if text.startswith("null", i):
        return None, i + 4
    if text[i] == "'":
        j = i + 1
        while text[j] != "'":
            j += 2 if text[j] == "\\" else 1
        return decode_literal(text[i : j + 1]), j + 1
    token = _NUMBER_RE.match(text, i).group(0)
    value = int(token) if _INT_RE.fullmatch(token) else float(token)
    return value, i + len(token)


def _parse_map(text: str, i: int) -> Tuple[Dict[str, Any], int]:
    result: Dict[str, Any] = {}
    i += 1
    while text[i] != "}":
        key = _KEY_RE.match(text, i).group(0)
        i += len(key) + 2
        if key.startswith("`"):
            key = key[1:-1].replace("``", "`")
        result[key], i = _parse_value(text, i)
        if text.startswith(", ", i):
            i += 2
    return result, i + 1


def literal_maps(query: str) -> List[Dict[str, Any]]:
    """Read the inline ``{key: literal}`` maps of a single-row statement, in order."""
    maps = []
    i = 0
    while i < len(query):
        if query[i] == "{":
            parsed, i = _parse_map(query, i)
            maps.append(parsed)
        else:
            i += 1
    return maps


class FakeGraphClient:
    """Records statements and applies node and edge writes to an in-memory graph.

    Bulk statements are applied from their ``$batch`` rows, single-row statements
    from their inline literals.

    Failures are injected with ``fail_when``; connectivity failures raise the abort
    signal the way the real client does.
    """

    def __init__(self) -> None:
        self.abort_signal = AbortSignal()
        self.executed: List[Tuple[str, Optional[Dict[str, Any]]]] = []
        self.nodes: Dict[Any, Dict[str, Any]] = {}
        self.relationships: List[Dict[str, Any]] = []
        self._rules: List[Dict[str, Any]] = []

    def fail_when(self, fragment: str, error: StoreError, times: Optional[int] = None) -> None:
        self._rules.append({"fragment": fragment, "error": error, "times": times})

    def select_graph(self, name: Optional[str] = None) -> GraphHandle:
        return GraphHandle(name or "neo4j")

    def close(self) -> None:
        pass

    @property
    def queries(self) -> List[str]:
        return [query for query, _ in self.executed]

    def _matching_rule(self, query: str) -> Optional[Dict[str, Any]]:
        for rule in self._rules:
            if rule["fragment"] in query and rule["times"] != 0:
                if rule["times"] is not None:
                    rule["times"] -= 1
                return rule
        return None

    def execute(
        self,
        handle: GraphHandle,
        statement: Statement | str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> StatementCounters:
        self.abort_signal.check()
        if isinstance(statement, Statement):
            query, params = statement.query, statement.parameters
        else:
            query, params = statement, parameters
        self.executed.append((query, params))

        rule = self._matching_rule(query)
        if rule is not None:
            error = rule["error"]
            if isinstance(error, ConnectivityError):
                self.abort_signal.set(str(error))
            raise error

        return self._apply(query, params or {})

    def _literal_rows(self, query: str) -> List[Dict[str, Any]]:
        if _REL_TYPE_RE.search(query):
            maps = literal_maps(query)
            props = maps[2] if len(maps) > 2 else {}
            return [{"source_id": maps[0]["id"], "target_id": maps[1]["id"], "props": props}]
        if query.startswith(("CREATE (n:", "MERGE (n:")):
            maps = literal_maps(query)
            return [{"id": maps[0]["id"], "props": maps[1] if len(maps) > 1 else {}}]
        return []

    def _apply(self, query: str, params: Dict[str, Any]) -> StatementCounters:
        batch = params.get("batch")
        if batch is None:
            batch = self._literal_rows(query)
        if not batch:
            return StatementCounters()

        rel = _REL_TYPE_RE.search(query)
        if rel:
            created = 0
            for row in batch:
                if row["source_id"] in self.nodes and row["target_id"] in self.nodes:
                    self.relationships.append(
                        {
                            "type": rel.group(1),
                            "source": row["source_id"],
                            "target": row["target_id"],
                            "props": dict(row["props"]),
                        }
                    )
                    created += 1
            return StatementCounters(relationships_created=created)

        label = _NODE_LABEL_RE.search(query).group(1)
        created = 0
        for row in batch:
            if row["id"] not in self.nodes:
                self.nodes[row["id"]] = {"label": label, "props": {}}
                created += 1
            self.nodes[row["id"]]["props"].update(row["props"])
        return StatementCounters(nodes_created=created)


@pytest.fixture
def fake_client() -> FakeGraphClient:
    """In-memory stand-in for GraphStoreClient."""
    return FakeGraphClient()


@pytest.fixture
def fake_client_factory() -> Callable[[], FakeGraphClient]:
    """Builds extra in-memory clients for side-by-side runs."""
    return FakeGraphClient


@pytest.fixture
def parse_literal_maps() -> Callable[[str], List[Dict[str, Any]]]:
    """Parser for the inline maps of fallback statements."""
    return literal_maps


@pytest.fixture
def csv_dir(tmp_path: Path) -> Path:
    """Empty directory for CSV extracts."""
    path = tmp_path / "csv"
    path.mkdir()
    return path


@pytest.fixture
def write_csv() -> Callable[[Path, Sequence[str], Sequence[Sequence[str]]], Path]:
    """Write a CSV file with a header row."""

    def _write(path: Path, header: Sequence[str], rows: Sequence[Sequence[str]]) -> Path:
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(rows)
        return path

    return _write


@pytest.fixture
def make_config(csv_dir: Path) -> Callable[..., Config]:
    """Config pointing at ``csv_dir`` with progress logging disabled."""

    def _make(**loader: Any) -> Config:
        values = {"csv_dir": str(csv_dir), "progress_interval": 0}
        values.update(loader)
        return Config().with_overrides(loader=values)

    return _make
