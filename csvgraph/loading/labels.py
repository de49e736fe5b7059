"""Reconciliation of edge-declared labels against node file labels.

Node and edge extracts are produced independently, so an edge file may spell a
label differently from the node file that defines it (``person`` vs ``Person``) or
reference a multi-label node as ``Network:Zone``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping

from loguru import logger

from csvgraph.storage.errors import LabelValidationError

LABEL_DELIMITER = ":"

LabelMapping = Mapping[str, str]


def sanitize_label(raw_label: str) -> str:
    """Turn a multi-label file token into a single label (``A:B`` -> ``A_B``)."""
    return raw_label.replace(LABEL_DELIMITER, "_")


def first_label(label: str) -> str:
    """First segment of a (possibly multi-label) label string."""
    return label.split(LABEL_DELIMITER, 1)[0]


def reconcile(node_labels: Iterable[str], edge_labels: Iterable[str]) -> LabelMapping:
    """Map every edge label onto a node label.

    Resolution order per edge label: exact match, then a unique case-insensitive
    match, then a ``:``-delimited composite whose parts all match node labels
    (accepted without a mapping entry). Exact matches always win.

    Args:
        node_labels: Labels derived from node file names
        edge_labels: Labels referenced by edge files; empty strings are ignored

    Returns:
        Read-only mapping from edge label to canonical node label

    Raises:
        LabelValidationError: If any edge label cannot be resolved
    """
    known = set(node_labels)
    by_lower: Dict[str, List[str]] = {}
    for label in known:
        by_lower.setdefault(label.lower(), []).append(label)

    mapping: Dict[str, str] = {}
    missing: List[str] = []

    for edge_label in sorted({label for label in edge_labels if label}):
        if edge_label in known:
            mapping[edge_label] = edge_label
            continue

        candidates = by_lower.get(edge_label.lower(), [])
        if len(candidates) == 1:
            mapping[edge_label] = candidates[0]
            logger.info(f"Mapped edge label '{edge_label}' -> node label '{candidates[0]}'")
            continue
        if len(candidates) > 1:
            logger.warning(
                f"Edge label '{edge_label}' matches several node labels case-insensitively: "
                f"{sorted(candidates)}"
            )

        if LABEL_DELIMITER in edge_label:
            parts = edge_label.split(LABEL_DELIMITER)
            if all(part and part.lower() in by_lower for part in parts):
                logger.info(f"Multi-label '{edge_label}' is valid (all parts exist as node labels)")
                continue

        missing.append(edge_label)

    if missing:
        logger.error(f"Found edge labels without corresponding node files: {missing}")
        raise LabelValidationError(missing)

    renamed = {k: v for k, v in mapping.items() if k != v}
    if renamed:
        logger.info(f"Label validation complete. Mappings: {renamed}")
    else:
        logger.info("All labels match exactly")
    return MappingProxyType(mapping)


def resolve(mapping: LabelMapping, raw_label: str) -> str:
    """Canonical label for ``raw_label``; unmapped labels are used as-is."""
    return mapping.get(raw_label, raw_label)
