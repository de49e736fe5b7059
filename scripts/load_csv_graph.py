#!/usr/bin/env python3
"""Load a directory of CSV extracts into a Neo4j graph.

The directory holds ``nodes_<Label>.csv`` and ``edges_<RelType>.csv`` files plus
optional ``indexes.csv`` and ``constraints.csv`` descriptors.

Usage:
    python scripts/load_csv_graph.py GRAPH_NAME [--csv-dir DIR] [--merge-mode]

Environment variables:
    NEO4J_URI - Neo4j connection URI (default: bolt://localhost:7687)
    NEO4J_USER - Neo4j username (default: neo4j)
    NEO4J_PASSWORD - Neo4j password
"""

import sys
from pathlib import Path
from typing import Optional

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from csvgraph.pipeline.ingestion_pipeline import IngestionPipeline
from csvgraph.storage.schemas import LoadSummary, SchemaCounts
from csvgraph.utils.config import Config, load_config
from csvgraph.utils.logging_setup import configure_logging

DEFAULT_CONFIG_PATH = Path("config/config.yaml")

app = typer.Typer(add_completion=False)
console = Console()


def resolve_uri(uri: Optional[str], host: Optional[str], port: Optional[int]) -> Optional[str]:
    """``--uri`` wins; otherwise build a bolt URI when host or port is given."""
    if uri:
        return uri
    if host or port:
        return f"bolt://{host or 'localhost'}:{port or 7687}"
    return None


def build_config(config_path: Optional[Path], **overrides) -> Config:
    """Load YAML/env configuration and apply CLI overrides."""
    if config_path is not None:
        config = load_config(config_path)
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config(DEFAULT_CONFIG_PATH)
    else:
        config = load_config(None)
    return config.with_overrides(**overrides)


def _schema_row(table: Table, name: str, counts: SchemaCounts) -> None:
    table.add_row(
        name, str(counts.created), str(counts.existing), str(counts.skipped), str(counts.failed)
    )


def print_summary(summary: LoadSummary) -> None:
    """Render the load summary as rich tables."""
    schema = Table(title="Schema")
    schema.add_column("Object")
    schema.add_column("Created", justify="right", style="green")
    schema.add_column("Existing", justify="right")
    schema.add_column("Skipped", justify="right", style="yellow")
    schema.add_column("Failed", justify="right", style="red")
    report = summary.schema_report
    _schema_row(schema, "ID indexes", report.id_indexes)
    _schema_row(schema, "Indexes", report.indexes)
    _schema_row(schema, "Supporting indexes", report.supporting_indexes)
    _schema_row(schema, "Constraints", report.constraints)
    console.print(schema)

    files = Table(title="Files")
    files.add_column("File", style="cyan")
    files.add_column("Kind")
    files.add_column("Loaded", justify="right", style="green")
    files.add_column("Skipped", justify="right", style="yellow")
    files.add_column("Failed", justify="right", style="red")
    files.add_column("Fallback batches", justify="right")
    files.add_column("Time", justify="right", style="dim")
    for result in summary.files:
        files.add_row(
            Path(result.path).name,
            result.kind.value,
            str(result.loaded),
            str(result.skipped),
            str(result.failed),
            str(result.fallback_batches),
            f"{result.duration:.2f}s",
        )
    console.print(files)

    console.print(
        f"[bold]Nodes:[/bold] {summary.nodes_loaded} loaded, {summary.nodes_failed} failed "
        f"({summary.nodes_created} created)"
    )
    console.print(
        f"[bold]Edges:[/bold] {summary.edges_loaded} loaded, {summary.edges_skipped} skipped, "
        f"{summary.edges_failed} failed ({summary.relationships_created} created)"
    )
    console.print(f"[dim]Finished in {summary.duration:.2f}s[/dim]")


def print_statistics(summary: LoadSummary) -> None:
    """Render graph statistics collected after the load."""
    stats = summary.statistics
    if not stats:
        return
    table = Table(title=f"Graph '{summary.graph_name}'")
    table.add_column("Label / Type", style="cyan")
    table.add_column("Count", justify="right")
    for labels, count in stats.get("nodes_by_labels", {}).items():
        table.add_row(f":{labels}", str(count))
    for rel_type, count in stats.get("relationships_by_type", {}).items():
        table.add_row(escape(f"[{rel_type}]"), str(count))
    table.add_row("Total nodes", str(stats.get("total_nodes", 0)))
    table.add_row("Total relationships", str(stats.get("total_relationships", 0)))
    console.print(table)

    for node in summary.samples:
        console.print(f"[dim]Sample:[/dim] {escape(str(node))}")


@app.command()
def main(
    graph_name: str = typer.Argument(..., help="Target graph (Neo4j database) name"),
    host: Optional[str] = typer.Option(None, help="Neo4j host"),
    port: Optional[int] = typer.Option(None, help="Neo4j bolt port"),
    uri: Optional[str] = typer.Option(None, help="Full connection URI (overrides host/port)"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Neo4j username"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Neo4j password"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", min=1),
    csv_dir: Optional[Path] = typer.Option(None, "--csv-dir", "-d", help="Directory of CSV files"),
    merge_mode: Optional[bool] = typer.Option(
        None, "--merge-mode/--create-mode", help="Upsert on id instead of creating"
    ),
    progress_interval: Optional[int] = typer.Option(
        None, "--progress-interval", min=0, help="Log progress every N records (0 disables)"
    ),
    fail_fast: Optional[bool] = typer.Option(
        None, "--fail-fast/--no-fail-fast", help="Abort on the first failed row"
    ),
    stats: Optional[bool] = typer.Option(
        None, "--stats/--no-stats", help="Print graph statistics after loading"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Load CSV node and edge files into GRAPH_NAME."""
    try:
        config = build_config(
            config_path,
            loader={
                "csv_dir": str(csv_dir) if csv_dir is not None else None,
                "batch_size": batch_size,
                "merge_mode": merge_mode,
                "progress_interval": progress_interval,
                "fail_fast": fail_fast,
                "show_stats": stats,
            },
            database={
                "neo4j_uri": resolve_uri(uri, host, port),
                "neo4j_user": username,
                "neo4j_password": password,
                "neo4j_database": graph_name,
            },
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2)

    configure_logging(config.logging, verbose=verbose)
    logger.info(f"Loading graph '{graph_name}' from {config.loader.csv_dir}")

    pipeline = IngestionPipeline(config, graph_name=graph_name)
    summary = pipeline.run()

    print_summary(summary)
    if summary.success:
        print_statistics(summary)
        console.print("[bold green]Load completed successfully[/bold green]")
        return

    console.print(
        f"[bold red]Load failed ({summary.phase.value}):[/bold red] {escape(str(summary.error))}"
    )
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
