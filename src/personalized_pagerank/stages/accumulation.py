"""
Mass accumulation: the reduce side of a PageRank round.

After the shuffle every message addressed to one node id arrives
together, in no particular order. The node is rebuilt from them:

- the StructureMessage supplies the adjacency list
- every MassMessage is added slot by slot with sum_log_probs

Exactly one structure message is expected per id. None means mass was
sent to a node that does not exist (a dangling reference): the mass is
dropped and counted. More than one means the snapshot is corrupt and
the round is aborted.

Each partition also reports the total mass it retained per slot, which
the driver uses to work out how much mass leaked this round.

Key PySpark patterns:
- groupByKey() for the plain shuffle
- combineByKey() when the combiner hint is set, so mass messages are
  merged map-side before they cross the network
- partitionBy-style custom partition functions (hash or node-id range)
"""

import logging
from collections import Counter
from collections.abc import Iterable, Iterator
from typing import NamedTuple

from pyspark import RDD, Accumulator
from pyspark.rdd import portable_hash

from personalized_pagerank.core import counters
from personalized_pagerank.core.config import PageRankConfig
from personalized_pagerank.core.errors import DuplicateStructureError
from personalized_pagerank.core.log_space import empty_masses, sum_log_prob_vectors
from personalized_pagerank.core.records import Message, PageRankNode, StructureMessage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-node merge logic
# ---------------------------------------------------------------------------


class PartialNode(NamedTuple):
    """A node id's messages merged so far."""

    adjacency: tuple[int, ...]
    structures: int
    masses: tuple[float, ...]
    mass_messages: int


def empty_partial(num_sources: int) -> PartialNode:
    return PartialNode((), 0, empty_masses(num_sources), 0)


def add_message(partial: PartialNode, message: Message) -> PartialNode:
    """Fold one message into a partial node."""
    if isinstance(message, StructureMessage):
        return partial._replace(
            adjacency=message.adjacency,
            structures=partial.structures + 1,
        )
    return partial._replace(
        masses=sum_log_prob_vectors(partial.masses, message.masses),
        mass_messages=partial.mass_messages + 1,
    )


def merge_partials(left: PartialNode, right: PartialNode) -> PartialNode:
    """Combine two partial nodes built on different map tasks."""
    return PartialNode(
        adjacency=right.adjacency if right.structures else left.adjacency,
        structures=left.structures + right.structures,
        masses=sum_log_prob_vectors(left.masses, right.masses),
        mass_messages=left.mass_messages + right.mass_messages,
    )


def finalize_node(node_id: int, partial: PartialNode) -> PageRankNode | None:
    """Turn a fully merged partial node into a node record.

    Returns None for a dangling reference (no structure received) and
    raises DuplicateStructureError when several structures were received.
    """
    if partial.structures == 1:
        return PageRankNode(node_id, partial.adjacency, partial.masses)
    if partial.structures == 0:
        return None
    raise DuplicateStructureError(node_id, partial.structures, partial.mass_messages)


def fold_messages(messages: Iterable[Message], num_sources: int) -> PartialNode:
    partial = empty_partial(num_sources)
    for message in messages:
        partial = add_message(partial, message)
    return partial


def count_partial(node_id: int, partial: PartialNode) -> tuple[PageRankNode | None, Counter]:
    """Finalize a merged partial node and count what it received."""
    node = finalize_node(node_id, partial)
    counts = Counter({counters.MASS_MESSAGES_RECEIVED: partial.mass_messages})
    if node is None:
        counts[counters.MISSING_STRUCTURE] += 1
    return node, counts


def accumulate_mass(
    node_id: int, messages: Iterable[Message], num_sources: int
) -> tuple[PageRankNode | None, Counter]:
    """Rebuild one node from every message addressed to it."""
    return count_partial(node_id, fold_messages(messages, num_sources))


# ---------------------------------------------------------------------------
# Partitioning
# ---------------------------------------------------------------------------


class RangePartitioner:
    """Assign node ids to partitions by contiguous id ranges.

    Keeps neighboring ids together, which helps when the graph was
    numbered so that related nodes have close ids.
    """

    def __init__(self, num_nodes: int, num_partitions: int) -> None:
        self.num_nodes = num_nodes
        self.num_partitions = num_partitions

    def __call__(self, node_id: int) -> int:
        partition = node_id * self.num_partitions // self.num_nodes
        return min(max(partition, 0), self.num_partitions - 1)


# ---------------------------------------------------------------------------
# Spark stage
# ---------------------------------------------------------------------------


def partition_retained_mass(
    records: Iterable[tuple[int, PageRankNode]], num_sources: int
) -> Iterator[tuple[float, ...]]:
    """Yield one vector per partition: the mass held by its nodes, per slot."""
    total = empty_masses(num_sources)
    for _, node in records:
        total = sum_log_prob_vectors(total, node.masses)
    yield total


class MassAccumulationStage:
    """Shuffle messages by node id and rebuild one node per id."""

    def __init__(self, config: PageRankConfig) -> None:
        self.config = config

    def partition_func(self, num_partitions: int):
        if self.config.use_range:
            return RangePartitioner(self.config.num_nodes, num_partitions)
        return portable_hash

    def shuffle(self, messages: RDD, num_partitions: int) -> RDD:
        """RDD[(id, message)] -> RDD[(id, PartialNode)], one entry per id."""
        num_sources = self.config.num_sources
        partition_func = self.partition_func(num_partitions)

        if self.config.use_combiner:
            return messages.combineByKey(
                lambda message: add_message(empty_partial(num_sources), message),
                add_message,
                merge_partials,
                num_partitions,
                partition_func,
            )

        return messages.groupByKey(num_partitions, partition_func).mapValues(
            lambda values: fold_messages(values, num_sources)
        )

    def finalize_partition(
        self,
        records: Iterable[tuple[int, PartialNode]],
        accumulator: Accumulator | None = None,
    ) -> Iterator[tuple[int, PageRankNode]]:
        local = Counter()
        for node_id, partial in records:
            node, counts = count_partial(node_id, partial)
            local.update(counts)
            if node is None:
                # Mass sent to a node without a structure record simply vanishes
                logger.warning(
                    "No structure received for nodeid: %d mass: %d",
                    node_id,
                    partial.mass_messages,
                )
                continue
            yield node_id, node

        if accumulator is not None:
            accumulator.add(local)

    def run(self, messages: RDD, num_partitions: int, accumulator: Accumulator | None = None) -> RDD:
        """RDD[(id, message)] -> pre-correction snapshot RDD[(id, node)]."""
        return self.shuffle(messages, num_partitions).mapPartitions(
            lambda records: self.finalize_partition(records, accumulator),
            preservesPartitioning=True,
        )

    def retained_masses(self, snapshot: RDD) -> list[tuple[float, ...]]:
        """Collect each partition's retained mass vector to the driver."""
        num_sources = self.config.num_sources
        return snapshot.mapPartitions(
            lambda records: partition_retained_mass(records, num_sources)
        ).collect()
