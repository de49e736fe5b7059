"""Pipeline orchestrators for end-to-end loads."""

from csvgraph.pipeline.ingestion_pipeline import IngestionPipeline
from csvgraph.pipeline.progress import ProgressCounter

__all__ = ["IngestionPipeline", "ProgressCounter"]
