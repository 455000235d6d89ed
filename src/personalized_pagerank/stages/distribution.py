"""
Mass distribution: the map side of a PageRank round.

Each node passes its structure along to itself and splits its mass
evenly over its out-edges:

  share = mass - log(out_degree)     (mass / out_degree, in log space)

Every neighbor receives the whole split vector: the personalization
sources are independent copies of mass flowing over the same topology.
Nodes without out-edges send nothing, so their mass leaks and has to be
recovered by the redistribution stage.

Key PySpark patterns:
- mapPartitions() so counters are summed once per partition
- an accumulator to bring the counters back to the driver
"""

import math
from collections import Counter
from collections.abc import Iterable, Iterator

from pyspark import RDD, Accumulator

from personalized_pagerank.core import counters
from personalized_pagerank.core.config import PageRankConfig
from personalized_pagerank.core.records import MassMessage, Message, PageRankNode, StructureMessage


def split_masses(masses: tuple[float, ...], out_degree: int) -> tuple[float, ...]:
    """Divide every slot of a mass vector by out_degree, in log space."""
    log_degree = math.log(out_degree)
    return tuple(mass - log_degree for mass in masses)


def distribute_mass(node: PageRankNode) -> tuple[list[tuple[int, Message]], Counter]:
    """Turn one node into its keyed structure and mass messages.

    Returns the (key, message) pairs to shuffle and the counters for
    this node. The input node is not modified.
    """
    messages: list[tuple[int, Message]] = [
        (node.node_id, StructureMessage(node.node_id, node.adjacency))
    ]
    counts = Counter({counters.NODES: 1})

    if node.adjacency:
        share = split_masses(node.masses, node.out_degree)
        for neighbor in node.adjacency:
            messages.append((neighbor, MassMessage(neighbor, share)))

        counts[counters.EDGES] += node.out_degree
        counts[counters.MASS_MESSAGES] += node.out_degree

    return messages, counts


class MassDistributionStage:
    """Spark wrapper around distribute_mass()."""

    def __init__(self, config: PageRankConfig) -> None:
        self.config = config

    def distribute_partition(
        self, records: Iterable[tuple[int, PageRankNode]], accumulator: Accumulator | None = None
    ) -> Iterator[tuple[int, Message]]:
        local = Counter()
        for _, node in records:
            messages, counts = distribute_mass(node)
            local.update(counts)
            yield from messages

        if accumulator is not None:
            accumulator.add(local)

    def run(self, snapshot: RDD, accumulator: Accumulator | None = None) -> RDD:
        """Snapshot RDD[(id, node)] -> RDD[(target id, message)]."""
        return snapshot.mapPartitions(
            lambda records: self.distribute_partition(records, accumulator)
        )
