"""
Bundled data utilities.

Locates the sample graphs shipped inside the package. Edge lists are
read with snapshots.load_adjacency(), which parses them on the
executors.
"""

from pathlib import Path

# Package data directory holding the bundled sample graphs
DATA_DIR = Path(__file__).parent.parent / "data"


def get_data_path(filename: str) -> Path:
    """
    Get the full path to a bundled data file.

    Args:
        filename: Data file name (e.g., "sample_graph.csv")

    Returns:
        Full path to the data file
    """
    return DATA_DIR / filename
