"""Tests for the load_csv_graph command line."""

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from csvgraph.storage.schemas import EntityKind, FileLoadResult, LoadPhase, LoadSummary
import scripts
from scripts.load_csv_graph import app, resolve_uri

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run without the repository config, env credentials or log files."""
    for name in ("NEO4J_URI", "NEO4J_USER", "NEO4J_PASSWORD", "NEO4J_DATABASE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def mock_pipeline():
    with patch("scripts.load_csv_graph.IngestionPipeline") as pipeline_cls, patch(
        "scripts.load_csv_graph.configure_logging"
    ) as mock_logging:
        yield pipeline_cls, mock_logging


def _summary(**values) -> LoadSummary:
    data = dict(graph_name="social", phase=LoadPhase.DONE, success=True)
    data.update(values)
    return LoadSummary(**data)


def test_resolve_uri():
    assert resolve_uri("neo4j://x:1", "h", 2) == "neo4j://x:1"
    assert resolve_uri(None, "db", None) == "bolt://db:7687"
    assert resolve_uri(None, None, 7688) == "bolt://localhost:7688"
    assert resolve_uri(None, None, None) is None


def test_successful_load(mock_pipeline):
    pipeline_cls, mock_logging = mock_pipeline
    pipeline_cls.return_value.run.return_value = _summary(
        files=[FileLoadResult(path="csv/nodes_Person.csv", kind=EntityKind.NODE, name="Person", loaded=2)],
        nodes_created=2,
    )

    result = runner.invoke(
        app,
        [
            "social",
            "--host",
            "db",
            "--port",
            "7688",
            "--batch-size",
            "10",
            "--csv-dir",
            "extracts",
            "--merge-mode",
            "--username",
            "loader",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Load completed successfully" in result.output
    config = pipeline_cls.call_args.args[0]
    assert pipeline_cls.call_args.kwargs["graph_name"] == "social"
    assert config.loader.batch_size == 10
    assert config.loader.csv_dir == "extracts"
    assert config.loader.merge_mode is True
    assert config.loader.fail_fast is False
    assert config.database.neo4j_uri == "bolt://db:7688"
    assert config.database.neo4j_user == "loader"
    assert config.database.neo4j_database == "social"
    mock_logging.assert_called_once()


def test_failed_load_exits_non_zero(mock_pipeline):
    pipeline_cls, _ = mock_pipeline
    pipeline_cls.return_value.run.return_value = _summary(
        success=False, phase=LoadPhase.ABORTED, error="connection refused"
    )

    result = runner.invoke(app, ["social"])

    assert result.exit_code == 1
    assert "Load failed" in result.output
    assert "connection refused" in result.output


def test_config_file_values_are_used(mock_pipeline, tmp_path):
    pipeline_cls, _ = mock_pipeline
    pipeline_cls.return_value.run.return_value = _summary()
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("loader:\n  batch_size: 77\n  progress_interval: 0\n", encoding="utf-8")

    result = runner.invoke(app, ["social", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    config = pipeline_cls.call_args.args[0]
    assert config.loader.batch_size == 77
    assert config.loader.progress_interval == 0


def test_missing_config_file(mock_pipeline, tmp_path):
    pipeline_cls, _ = mock_pipeline

    result = runner.invoke(app, ["social", "--config", str(tmp_path / "absent.yaml")])

    assert result.exit_code == 2
    assert "Configuration error" in result.output
    pipeline_cls.assert_not_called()


def test_stats_are_printed(mock_pipeline):
    pipeline_cls, _ = mock_pipeline
    pipeline_cls.return_value.run.return_value = _summary(
        statistics={
            "nodes_by_labels": {"Person": 2},
            "relationships_by_type": {"KNOWS": 1},
            "total_nodes": 2,
            "total_relationships": 1,
        }
    )

    result = runner.invoke(app, ["social", "--stats"])

    assert result.exit_code == 0, result.output
    assert "KNOWS" in result.output
    assert pipeline_cls.call_args.args[0].loader.show_stats is True


def test_entry_point_module_ships_as_a_regular_package():
    assert scripts.__file__ is not None
    assert Path(scripts.__file__).name == "__init__.py"
