"""
Per-iteration snapshots and the iteration 0 bootstrap.

A snapshot is an RDD[(node_id, PageRankNode)] stored under the base path
as iterXXXX (zero padded to four digits). The pre-correction output of
a round's accumulation stage is stored next to it as iterXXXXt. Both
are written with saveAsPickleFile and never modified afterwards.

Iteration 0 is built from an edge list: every node listed in it gets
a record, and the source node of slot i starts with all of slot i's
mass (log(1) = 0.0).
"""

import logging
from collections.abc import Iterable, Iterator

from pyspark import RDD, SparkContext

from personalized_pagerank.core.config import PageRankConfig
from personalized_pagerank.core.log_space import LOG_ONE, LOG_ZERO
from personalized_pagerank.core.records import PageRankNode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def iteration_path(base_path: str, iteration: int) -> str:
    """Final snapshot path for an iteration, e.g. base/iter0003."""
    return f"{base_path.rstrip('/')}/iter{iteration:04d}"


def pre_correction_path(base_path: str, iteration: int) -> str:
    """Accumulation output before redistribution, e.g. base/iter0003t."""
    return iteration_path(base_path, iteration) + "t"


def delete_path(sc: SparkContext, path: str) -> bool:
    """Recursively delete a path through Hadoop's FileSystem API.

    Works for local paths and any Hadoop URI (hdfs://, s3a://, ...).
    Returns True when something was deleted.
    """
    hadoop_path = sc._jvm.org.apache.hadoop.fs.Path(path)
    fs = hadoop_path.getFileSystem(sc._jsc.hadoopConfiguration())
    return bool(fs.delete(hadoop_path, True))


# ---------------------------------------------------------------------------
# Read / write
# ---------------------------------------------------------------------------


def read_snapshot(sc: SparkContext, path: str) -> RDD:
    """Load a snapshot written by write_snapshot()."""
    return sc.pickleFile(path)


def write_snapshot(sc: SparkContext, snapshot: RDD, path: str) -> None:
    """Write a snapshot, replacing whatever was at path before."""
    if delete_path(sc, path):
        logger.info("Deleted existing output at %s", path)
    snapshot.saveAsPickleFile(path)


def collect_masses(snapshot: RDD) -> dict[int, tuple[float, ...]]:
    """Bring every node's mass vector to the driver. Small graphs only."""
    return dict(snapshot.mapValues(lambda node: node.masses).collect())


def top_scores(snapshot: RDD, slot: int, k: int) -> list[tuple[int, float]]:
    """The k highest-mass nodes for one source slot, as log probabilities."""
    return snapshot.map(lambda pair: (pair[0], pair[1].masses[slot])).takeOrdered(
        k, key=lambda pair: (-pair[1], pair[0])
    )


# ---------------------------------------------------------------------------
# Graph loading
# ---------------------------------------------------------------------------


def parse_adjacency_line(line: str) -> list[tuple[int, tuple[int, ...]]]:
    """Parse 'src dst' / 'src,dst' / 'src dst1 dst2 ...' into one adjacency row.

    A bare 'src' is a node without out-edges and yields (src, ()).
    Blank lines and '#' comments produce no rows.
    """
    line = line.split("#", 1)[0].strip()
    if not line:
        return []
    parts = line.replace(",", " ").split()
    return [(int(parts[0]), tuple(int(target) for target in parts[1:]))]


def is_header(line: str) -> bool:
    """True for a column header such as 'source,target'."""
    fields = line.replace(",", " ").split()
    return bool(fields) and not fields[0].lstrip("-").isdigit()


def parse_adjacency_lines(
    partition: int, lines: Iterable[str]
) -> Iterator[tuple[int, tuple[int, ...]]]:
    """Parse one partition of an edge list file.

    Only the first line of the file may be a header; anything else that
    does not parse is an error.
    """
    lines = iter(lines)
    if partition == 0:
        first = next(lines, None)
        if first is not None and not is_header(first):
            yield from parse_adjacency_line(first)
    for line in lines:
        yield from parse_adjacency_line(line)


def load_adjacency(sc: SparkContext, path: str) -> RDD:
    """Read an edge list text file into RDD[(src, (dst, ...))], one row per line."""
    return sc.textFile(path).mapPartitionsWithIndex(parse_adjacency_lines)


def initial_masses(node_id: int, sources: tuple[int, ...]) -> tuple[float, ...]:
    """Slot i holds all of its mass at sources[i], nothing elsewhere."""
    return tuple(LOG_ONE if source == node_id else LOG_ZERO for source in sources)


def build_adjacency_list(rows: RDD) -> RDD:
    """Merge adjacency rows into RDD[(node, (neighbor1, neighbor2, ...))].

    Rows for the same node are concatenated, duplicate edges removed and
    neighbors sorted, so the adjacency order does not depend on how the
    shuffle delivered the rows. A node listed without targets keeps an
    empty adjacency list.
    """
    return rows.reduceByKey(lambda left, right: left + right).mapValues(
        lambda targets: tuple(sorted(set(targets)))
    )


def build_initial_snapshot(
    sc: SparkContext,
    rows: RDD,
    config: PageRankConfig,
    include_targets: bool = False,
) -> RDD:
    """Create iteration 0 from RDD[(src, (dst, ...))].

    Every node that has a row gets a record, including nodes listed
    without targets. Source ids always get a record too. Nodes that only
    appear as edge targets get an empty record when include_targets is
    set; otherwise they stay dangling references.
    """
    sources = config.sources
    adjacency = build_adjacency_list(rows)

    placeholders = sc.parallelize([(source, ()) for source in set(sources)])
    if include_targets:
        placeholders = placeholders.union(
            rows.flatMap(lambda row: [(target, ()) for target in row[1]])
        )

    return (
        adjacency.union(placeholders)
        .reduceByKey(lambda left, right: left or right)
        .map(
            lambda pair: (
                pair[0],
                PageRankNode(pair[0], pair[1], initial_masses(pair[0], sources)),
            )
        )
    )


def bootstrap(
    sc: SparkContext,
    input_path: str,
    config: PageRankConfig,
    include_targets: bool = False,
) -> str:
    """Build iteration 0 from an edge list file and write it under base_path."""
    out = iteration_path(config.base_path, 0)
    snapshot = build_initial_snapshot(sc, load_adjacency(sc, input_path), config, include_targets)

    logger.info("Building iteration 0")
    logger.info(" - input: %s", input_path)
    logger.info(" - output: %s", out)
    logger.info(" - sources: %s", ",".join(str(s) for s in config.sources))

    write_snapshot(sc, snapshot, out)
    return out
