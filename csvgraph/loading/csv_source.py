"""Discovery and streaming of the CSV extracts in a directory."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, TypeVar

from loguru import logger

from csvgraph.loading.labels import sanitize_label
from csvgraph.storage.errors import CsvValidationError

NODE_PREFIX = "nodes_"
EDGE_PREFIX = "edges_"
CSV_SUFFIX = ".csv"
INDEXES_FILE = "indexes.csv"
CONSTRAINTS_FILE = "constraints.csv"

T = TypeVar("T")


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive lists of at most ``size`` items."""
    if size <= 0:
        raise ValueError("Batch size must be positive")
    buf: List[T] = []
    for item in items:
        buf.append(item)
        if len(buf) >= size:
            yield buf
            buf = []
    if buf:
        yield buf


def _stem(path: Path, prefix: str) -> str:
    return path.name[len(prefix) : -len(CSV_SUFFIX)]


def node_label_for(path: Path) -> str:
    """Label of a ``nodes_<Label>.csv`` file."""
    return sanitize_label(_stem(path, NODE_PREFIX))


def relationship_type_for(path: Path) -> str:
    """Relationship type of an ``edges_<RelType>.csv`` file."""
    return _stem(path, EDGE_PREFIX)


class CsvSource:
    """Read-only view over a directory of CSV extracts."""

    def __init__(self, csv_dir: str | Path, encoding: str = "utf-8-sig"):
        self.csv_dir = Path(csv_dir).expanduser()
        self.encoding = encoding

    def ensure_exists(self) -> None:
        if not self.csv_dir.is_dir():
            raise CsvValidationError(f"Directory {self.csv_dir} does not exist")

    def _files(self, prefix: str) -> List[Path]:
        return sorted(
            p
            for p in self.csv_dir.iterdir()
            if p.is_file()
            and p.name.startswith(prefix)
            and p.name.endswith(CSV_SUFFIX)
            and len(p.name) > len(prefix) + len(CSV_SUFFIX)
        )

    def node_files(self) -> List[Path]:
        return self._files(NODE_PREFIX)

    def edge_files(self) -> List[Path]:
        return self._files(EDGE_PREFIX)

    def node_labels(self) -> Set[str]:
        return {node_label_for(p) for p in self.node_files()}

    def iter_rows(self, path: Path) -> Iterator[Dict[Optional[str], Optional[str]]]:
        with path.open("r", encoding=self.encoding, newline="") as f:
            yield from csv.DictReader(f)

    def headers(self, path: Path) -> List[str]:
        with path.open("r", encoding=self.encoding, newline="") as f:
            reader = csv.reader(f)
            return list(next(reader, []))

    def count_rows(self, path: Path) -> int:
        """Count data records (excluding the header); quoted newlines are honoured."""
        with path.open("r", encoding=self.encoding, newline="") as f:
            reader = csv.reader(f)
            next(reader, None)
            return sum(1 for _ in reader)

    def count_all(self, paths: Iterable[Path]) -> int:
        return sum(self.count_rows(p) for p in paths)

    def read_descriptor(self, name: str) -> Optional[List[Dict[Optional[str], Optional[str]]]]:
        """Rows of ``indexes.csv`` / ``constraints.csv``, or None if the file is absent."""
        path = self.csv_dir / name
        if not path.exists():
            return None
        rows = list(self.iter_rows(path))
        logger.info(f"  Read {len(rows)} rows from {path}")
        return rows

    def edge_labels(self) -> Set[str]:
        """All ``source_label`` / ``target_label`` values across edge files."""
        labels: Set[str] = set()
        for path in self.edge_files():
            for row in self.iter_rows(path):
                for column in ("source_label", "target_label"):
                    value = (row.get(column) or "").strip()
                    if value:
                        labels.add(value)
        return labels

    def validate_headers(self) -> None:
        """Check required columns before anything is written.

        Raises:
            CsvValidationError: If a node file lacks ``id`` or an edge file lacks
                ``source``/``target``
        """
        problems: List[str] = []
        for path in self.node_files():
            headers = self.headers(path)
            if headers and "id" not in headers:
                problems.append(f"{path.name}: missing 'id' column")
        for path in self.edge_files():
            headers = self.headers(path)
            if not headers:
                continue
            for column in ("source", "target"):
                if column not in headers:
                    problems.append(f"{path.name}: missing '{column}' column")
        if problems:
            raise CsvValidationError("Invalid CSV headers: " + "; ".join(problems))
