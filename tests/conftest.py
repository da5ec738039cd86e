"""Pytest configuration and shared fixtures."""

import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest

from cdmcovariates.builders import registry as registry_module
from cdmcovariates.builders.base import BuildContext, CohortReference
from cdmcovariates.builders.registry import BuilderRegistry, create_default_registry
from cdmcovariates.extraction import create_cohort_table, drop_cohort_table

CDM_DDL = """
CREATE TABLE person (
    person_id INTEGER PRIMARY KEY,
    gender_concept_id INTEGER NOT NULL,
    year_of_birth INTEGER NOT NULL
);
CREATE TABLE observation_period (
    observation_period_id INTEGER PRIMARY KEY,
    person_id INTEGER NOT NULL,
    observation_period_start_date TEXT NOT NULL,
    observation_period_end_date TEXT NOT NULL
);
CREATE TABLE condition_occurrence (
    condition_occurrence_id INTEGER PRIMARY KEY,
    person_id INTEGER NOT NULL,
    condition_concept_id INTEGER NOT NULL,
    condition_start_date TEXT NOT NULL
);
CREATE TABLE concept (
    concept_id INTEGER PRIMARY KEY,
    concept_name TEXT NOT NULL
);
CREATE TABLE cohort (
    cohort_definition_id INTEGER NOT NULL,
    subject_id INTEGER NOT NULL,
    cohort_start_date TEXT NOT NULL,
    cohort_end_date TEXT NOT NULL
);
CREATE TABLE cohort_v4 (
    cohort_concept_id INTEGER NOT NULL,
    subject_id INTEGER NOT NULL,
    cohort_start_date TEXT NOT NULL,
    cohort_end_date TEXT NOT NULL
);
"""

PERSONS = [
    (1, 8507, 1960),
    (2, 8532, 1985),
    (3, 8507, 1990),
]

OBSERVATION_PERIODS = [
    (1, 1, "2015-01-01", "2021-12-31"),
    (2, 2, "2019-06-01", "2021-12-31"),
    (3, 3, "2020-03-01", "2021-12-31"),
]

CONDITIONS = [
    (1, 1, 201826, "2019-06-15"),  # 200 days before index
    (2, 1, 320128, "2018-01-01"),  # 730 days before index
    (3, 2, 201826, "2020-02-01"),  # 29 days before index
    (4, 2, 0, "2020-02-01"),  # unmapped
    (5, 2, 320128, "2020-03-05"),  # after index
]

CONCEPTS = [
    (8507, "MALE"),
    (8532, "FEMALE"),
    (201826, "Type 2 diabetes mellitus"),
    (320128, "Essential hypertension"),
]

COHORT = [
    (1, 1, "2020-01-01", "2020-12-31"),
    (1, 2, "2020-03-01", "2020-12-31"),
    (2, 3, "2020-03-01", "2020-12-31"),
]


def populate_cdm(connection: sqlite3.Connection) -> None:
    """Create and fill a tiny CDM in the given SQLite database."""
    connection.executescript(CDM_DDL)
    connection.executemany("INSERT INTO person VALUES (?, ?, ?)", PERSONS)
    connection.executemany(
        "INSERT INTO observation_period VALUES (?, ?, ?, ?)", OBSERVATION_PERIODS
    )
    connection.executemany("INSERT INTO condition_occurrence VALUES (?, ?, ?, ?)", CONDITIONS)
    connection.executemany("INSERT INTO concept VALUES (?, ?)", CONCEPTS)
    connection.executemany("INSERT INTO cohort VALUES (?, ?, ?, ?)", COHORT)
    connection.executemany("INSERT INTO cohort_v4 VALUES (?, ?, ?, ?)", COHORT)
    connection.commit()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def cdm_connection() -> Iterator[sqlite3.Connection]:
    """In-memory SQLite CDM usable from builder worker threads."""
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    populate_cdm(connection)
    yield connection
    connection.close()


@pytest.fixture
def cdm_file(tmp_path: Path) -> Path:
    """SQLite CDM database file."""
    path = tmp_path / "cdm.sqlite"
    connection = sqlite3.connect(path)
    populate_cdm(connection)
    connection.close()
    return path


@pytest.fixture
def cohort(cdm_connection: sqlite3.Connection) -> Iterator[CohortReference]:
    """Cohort temp table holding the two subjects of cohort 1."""
    reference = create_cohort_table(cdm_connection, cohort_ids=[1])
    yield reference
    drop_cohort_table(cdm_connection, reference)


@pytest.fixture
def context(cdm_connection: sqlite3.Connection, cohort: CohortReference) -> BuildContext:
    """Build context over cohort 1."""
    return BuildContext(
        connection=cdm_connection,
        cdm_database_schema="main",
        cohort=cohort,
    )


@pytest.fixture
def registry() -> BuilderRegistry:
    """Fresh registry holding the built-in builders."""
    return create_default_registry()


@pytest.fixture
def fresh_global_registry(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset the global registry so registrations don't leak between tests."""
    monkeypatch.setattr(registry_module, "_registry", None)
    yield
