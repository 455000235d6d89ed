"""
Pytest configuration and shared fixtures for PySpark tests.
"""

import os
from pathlib import Path

import pytest
from pyspark import SparkContext
from pyspark.sql import SparkSession

from personalized_pagerank.core.records import PageRankNode
from personalized_pagerank.snapshots import iteration_path, write_snapshot

SRC_DIR = Path(__file__).parent.parent / "src"


@pytest.fixture(scope="session")
def spark() -> SparkSession:
    """
    Create a SparkSession for testing.

    Uses session scope to reuse the same Spark context across all tests,
    which significantly speeds up test execution.
    """
    # Python workers unpickle node records by module name, so they need src/ too
    python_path = os.environ.get("PYTHONPATH", "")
    os.environ["PYTHONPATH"] = os.pathsep.join(p for p in (str(SRC_DIR), python_path) if p)

    spark = (
        SparkSession.builder
        .appName("pytest-pyspark")
        .master("local[2]")  # Use 2 cores for testing
        .config("spark.sql.shuffle.partitions", "2")  # Reduce partitions for faster tests
        .config("spark.default.parallelism", "2")
        .config("spark.ui.enabled", "false")  # Disable Spark UI for tests
        .config("spark.driver.memory", "1g")
        .getOrCreate()
    )

    # Set log level to reduce noise during tests
    spark.sparkContext.setLogLevel("WARN")

    yield spark

    spark.stop()


@pytest.fixture(scope="session")
def sc(spark: SparkSession) -> SparkContext:
    """
    Get SparkContext from the SparkSession fixture.

    The PageRank stages all run on RDDs.
    """
    return spark.sparkContext


@pytest.fixture
def base_path(tmp_path: Path) -> str:
    """A fresh snapshot base directory per test."""
    return str(tmp_path / "pagerank")


@pytest.fixture
def write_graph(sc: SparkContext):
    """
    Write a list of PageRankNode records as iteration 0 under a base path.

    Returns the path written.
    """

    def _write(base: str, nodes: list[PageRankNode], num_partitions: int = 2) -> str:
        path = iteration_path(base, 0)
        snapshot = sc.parallelize([(node.node_id, node) for node in nodes], num_partitions)
        write_snapshot(sc, snapshot, path)
        return path

    return _write
