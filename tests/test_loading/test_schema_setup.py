"""Tests for index and constraint creation."""

import pytest

from csvgraph.loading.csv_source import CsvSource
from csvgraph.loading.schema_setup import SchemaSetup, index_statement, unique_constraint_statement
from csvgraph.storage.errors import (
    AbortedError,
    AlreadyExistsError,
    ConnectivityError,
    StatementError,
    store_error_from_message,
)
from csvgraph.storage.graph_client import GraphHandle


@pytest.fixture
def schema_setup(fake_client, csv_dir) -> SchemaSetup:
    return SchemaSetup(fake_client, GraphHandle("test"), CsvSource(csv_dir))


def test_statements():
    assert index_statement("Person", ["id"]) == "CREATE INDEX FOR (n:Person) ON (n.id)"
    assert index_statement("Person", ["a", "b"]) == "CREATE INDEX FOR (n:Person) ON (n.a, n.b)"
    assert unique_constraint_statement("Person", ["email"]) == (
        "CREATE CONSTRAINT FOR (n:Person) REQUIRE n.email IS UNIQUE"
    )
    assert unique_constraint_statement("Person", ["a", "b"]) == (
        "CREATE CONSTRAINT FOR (n:Person) REQUIRE (n.a, n.b) IS UNIQUE"
    )


def test_id_indexes(schema_setup, fake_client):
    counts = schema_setup.create_id_indexes(["Person", "Company", "Person"])

    assert counts.created == 2
    assert fake_client.queries == [
        "CREATE INDEX FOR (n:Company) ON (n.id)",
        "CREATE INDEX FOR (n:Person) ON (n.id)",
    ]


def test_existing_index_is_not_a_failure(schema_setup, fake_client):
    fake_client.fail_when(
        "(n:Person)", AlreadyExistsError("An equivalent index already exists")
    )

    counts = schema_setup.create_id_indexes(["Person", "Company"])

    assert counts.created == 1
    assert counts.existing == 1
    assert counts.failed == 0


def test_generic_failure_is_counted_and_not_raised(schema_setup, fake_client):
    fake_client.fail_when("(n:Person)", StatementError("Invalid input"))

    counts = schema_setup.create_id_indexes(["Person"])

    assert counts.failed == 1
    assert not fake_client.abort_signal.is_set()


def test_connectivity_failure_propagates(schema_setup, fake_client):
    fake_client.fail_when("CREATE INDEX", ConnectivityError("connection refused"))

    with pytest.raises(ConnectivityError):
        schema_setup.create_id_indexes(["A", "B"])

    assert fake_client.abort_signal.is_set()
    assert len(fake_client.executed) == 1
    with pytest.raises(AbortedError):
        schema_setup.create_id_indexes(["C"])


def test_indexes_from_csv(schema_setup, fake_client, csv_dir, write_csv):
    write_csv(
        csv_dir / "indexes.csv",
        ["labels", "properties", "uniqueness", "type"],
        [
            ["Person", "name;age", "NONUNIQUE", "RANGE"],
            ["", "x", "", ""],
            ["Person", "", "", ""],
            ["", "", "", "LOOKUP"],
            ["Person", "email", "UNIQUE", "RANGE"],
        ],
    )

    counts = schema_setup.create_indexes(schema_setup._index_specs())

    assert fake_client.queries == [
        "CREATE INDEX FOR (n:Person) ON (n.name)",
        "CREATE INDEX FOR (n:Person) ON (n.age)",
    ]
    assert counts.created == 2
    assert counts.skipped == 4


def test_missing_descriptor_files_only_warn(schema_setup, fake_client):
    report = schema_setup.run([])

    assert report.indexes.created == 0
    assert report.constraints.created == 0
    assert fake_client.executed == []


def test_constraints_and_supporting_indexes(schema_setup, fake_client, csv_dir, write_csv):
    write_csv(
        csv_dir / "constraints.csv",
        ["labels", "properties", "type", "entity_type"],
        [
            ["Person", "email", "UNIQUENESS", "NODE"],
            ["Account", "bank;number", "UNIQUENESS", "NODE"],
            ["Person", "name", "NODE_PROPERTY_EXISTENCE", "NODE"],
            ["KNOWS", "since", "UNIQUENESS", "RELATIONSHIP"],
        ],
    )

    report = schema_setup.run(["Person"])

    assert fake_client.queries == [
        "CREATE CONSTRAINT FOR (n:Person) REQUIRE n.email IS UNIQUE",
        "CREATE CONSTRAINT FOR (n:Account) REQUIRE (n.bank, n.number) IS UNIQUE",
        "CREATE INDEX FOR (n:Person) ON (n.id)",
    ]
    assert report.id_indexes.created == 1
    # Both keys are covered by their constraint indexes.
    assert report.supporting_indexes.created == 0
    assert report.supporting_indexes.skipped == 2
    assert report.constraints.created == 2
    assert report.constraints.skipped == 2


def test_supporting_indexes_can_be_disabled(fake_client, csv_dir, write_csv):
    write_csv(csv_dir / "constraints.csv", ["labels", "properties", "type"], [["P", "e", "UNIQUE"]])
    no_support = SchemaSetup(
        fake_client, GraphHandle("test"), CsvSource(csv_dir), create_supporting_indexes=False
    )

    report = no_support.run([])

    assert fake_client.queries == ["CREATE CONSTRAINT FOR (n:P) REQUIRE n.e IS UNIQUE"]
    assert report.supporting_indexes.created == 0


def test_constraint_keys_get_no_plain_index(schema_setup, fake_client, csv_dir, write_csv):
    write_csv(
        csv_dir / "constraints.csv",
        ["labels", "properties", "type", "entity_type"],
        [["Person", "id", "UNIQUENESS", "NODE"], ["Person", "email", "UNIQUENESS", "NODE"]],
    )
    write_csv(
        csv_dir / "indexes.csv",
        ["labels", "properties", "uniqueness", "type"],
        [["Person", "email;name", "NONUNIQUE", "RANGE"]],
    )

    report = schema_setup.run(["Person"])

    assert fake_client.queries == [
        "CREATE CONSTRAINT FOR (n:Person) REQUIRE n.id IS UNIQUE",
        "CREATE CONSTRAINT FOR (n:Person) REQUIRE n.email IS UNIQUE",
        "CREATE INDEX FOR (n:Person) ON (n.name)",
    ]
    assert report.constraints.created == 2
    assert report.id_indexes.skipped == 1
    assert report.indexes.created == 1
    assert report.indexes.skipped == 1
    assert schema_setup.is_backed("Person", ["email"])


def test_index_blocking_a_constraint_counts_as_failed(
    schema_setup, fake_client, csv_dir, write_csv
):
    write_csv(
        csv_dir / "constraints.csv",
        ["labels", "properties", "type"],
        [["Person", "email", "UNIQUENESS"]],
    )
    fake_client.fail_when(
        "CREATE CONSTRAINT FOR (n:Person) REQUIRE n.email",
        store_error_from_message(
            "There already exists an index (:Person {email}). "
            "A constraint cannot be created until the index has been dropped."
        ),
    )

    report = schema_setup.run(["Person"])

    assert report.constraints.created == 0
    assert report.constraints.existing == 0
    assert report.constraints.failed == 1
    assert not schema_setup.is_backed("Person", ["email"])
    # The key keeps a plain index for lookups.
    assert "CREATE INDEX FOR (n:Person) ON (n.email)" in fake_client.queries
    assert report.supporting_indexes.created == 1


def test_rerun_against_existing_constraint(schema_setup, fake_client, csv_dir, write_csv):
    write_csv(
        csv_dir / "constraints.csv",
        ["labels", "properties", "type"],
        [["Person", "email", "UNIQUENESS"]],
    )
    fake_client.fail_when(
        "CREATE CONSTRAINT",
        store_error_from_message("An equivalent constraint already exists"),
    )

    report = schema_setup.run(["Person"])

    assert report.constraints.existing == 1
    assert report.constraints.failed == 0
    assert report.supporting_indexes.skipped == 1
    assert "CREATE INDEX FOR (n:Person) ON (n.email)" not in fake_client.queries


def test_index_already_created_by_constraint_is_existing(fake_client, csv_dir, write_csv):
    write_csv(
        csv_dir / "constraints.csv",
        ["labels", "properties", "type"],
        [["Person", "email", "UNIQUENESS"]],
    )
    fake_client.fail_when(
        "CREATE INDEX FOR (n:Person) ON (n.email)",
        store_error_from_message(
            "There is a uniqueness constraint on :Person(email), "
            "so an index is already created that matches this."
        ),
    )
    standalone = SchemaSetup(fake_client, GraphHandle("test"), CsvSource(csv_dir))

    counts = standalone.create_supporting_indexes(standalone._constraint_specs())

    assert counts.existing == 1
    assert counts.failed == 0
