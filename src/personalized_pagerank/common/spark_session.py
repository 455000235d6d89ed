"""
Shared SparkSession utilities for the PageRank driver and tools.

This module provides a consistent way to create SparkSession instances
with sensible defaults for local development and cluster runs.

Logging is configured via conf/log4j2.properties to:
- Write INFO logs to .logs/spark.log
- Only show ERROR on console
"""

import os
from pathlib import Path

from pyspark.sql import SparkSession

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

# Path to log4j2 config
LOG4J2_CONFIG = PROJECT_ROOT / "conf" / "log4j2.properties"

# Base application name prefix for all Spark sessions
# Final app name will be: APP_NAME_PREFIX-<tool name>
APP_NAME_PREFIX = "PersonalizedPageRank"


def _ensure_logs_dir() -> None:
    """Ensure .logs directory exists."""
    logs_dir = PROJECT_ROOT / ".logs"
    logs_dir.mkdir(exist_ok=True)


def _build_app_name(tool_name: str | None = None) -> str:
    """
    Build the full application name.

    Args:
        tool_name: Optional tool identifier (e.g., "Run", "Build")

    Returns:
        Full app name like "PersonalizedPageRank" or "PersonalizedPageRank-Run"
    """
    if tool_name:
        return f"{APP_NAME_PREFIX}-{tool_name}"
    return APP_NAME_PREFIX


def create_spark_session(
    tool_name: str | None = None,
    master: str = "local[*]",
    shuffle_partitions: int = 4,
) -> SparkSession:
    """
    Create a SparkSession with common configurations.

    Logging is configured to write detailed logs to .logs/spark.log
    while only showing errors on the console. Speculative execution is
    disabled so that duplicate task attempts do not add their counters
    to the accumulator twice.

    Args:
        tool_name: Identifier appended to the app name
        master: Spark master URL (default: local[*] for local development)
        shuffle_partitions: Default partition count for shuffles

    Returns:
        Configured SparkSession instance
    """
    app_name = _build_app_name(tool_name)

    # Change working directory context for log4j file output
    original_cwd = os.getcwd()
    if LOG4J2_CONFIG.exists():
        _ensure_logs_dir()
        os.chdir(PROJECT_ROOT)

    try:
        builder = SparkSession.builder.appName(app_name).master(master)

        # Configure log4j2 if config exists
        if LOG4J2_CONFIG.exists():
            builder = builder.config(
                "spark.driver.extraJavaOptions",
                f"-Dlog4j.configurationFile=file:{LOG4J2_CONFIG}",
            )

        spark = (
            builder.config("spark.sql.shuffle.partitions", str(shuffle_partitions))
            .config("spark.default.parallelism", str(shuffle_partitions))
            .config("spark.speculation", "false")
            .config("spark.driver.memory", "2g")
            .config("spark.ui.showConsoleProgress", "false")
            .getOrCreate()
        )

        # Set log level for any logs after startup
        spark.sparkContext.setLogLevel("ERROR")

        return spark
    finally:
        os.chdir(original_cwd)

