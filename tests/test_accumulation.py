"""
Tests for stages/accumulation.py.
"""

import math
from collections import Counter

import pytest
from pyspark import SparkContext

from personalized_pagerank.core import counters
from personalized_pagerank.core.config import PageRankConfig
from personalized_pagerank.core.counters import CounterAccumulatorParam
from personalized_pagerank.core.errors import DuplicateStructureError
from personalized_pagerank.core.log_space import LOG_ZERO
from personalized_pagerank.core.records import MassMessage, PageRankNode, StructureMessage
from personalized_pagerank.stages.accumulation import (
    MassAccumulationStage,
    RangePartitioner,
    accumulate_mass,
    add_message,
    empty_partial,
    merge_partials,
    partition_retained_mass,
)

HALF = math.log(0.5)
QUARTER = math.log(0.25)


class TestAccumulateMass:
    """Tests for rebuilding one node from its messages."""

    def test_normal_case(self) -> None:
        messages = [
            MassMessage(5, (HALF, LOG_ZERO)),
            StructureMessage(5, (6, 7)),
            MassMessage(5, (QUARTER, QUARTER)),
        ]
        node, counts = accumulate_mass(5, messages, 2)

        assert node.node_id == 5
        assert node.adjacency == (6, 7)
        assert math.exp(node.masses[0]) == pytest.approx(0.75)
        assert math.exp(node.masses[1]) == pytest.approx(0.25)
        assert counts[counters.MASS_MESSAGES_RECEIVED] == 2
        assert counts[counters.MISSING_STRUCTURE] == 0

    def test_structure_only_has_zero_mass(self) -> None:
        node, _ = accumulate_mass(5, [StructureMessage(5, ())], 3)
        assert node.masses == (LOG_ZERO, LOG_ZERO, LOG_ZERO)

    def test_message_order_is_irrelevant(self) -> None:
        messages = [
            MassMessage(1, (math.log(0.1),)),
            MassMessage(1, (math.log(0.2),)),
            StructureMessage(1, (2,)),
            MassMessage(1, (math.log(0.3),)),
        ]
        forward, _ = accumulate_mass(1, messages, 1)
        backward, _ = accumulate_mass(1, list(reversed(messages)), 1)

        assert forward.adjacency == backward.adjacency
        assert forward.masses[0] == pytest.approx(backward.masses[0], abs=1e-12)

    def test_missing_structure_drops_node(self) -> None:
        node, counts = accumulate_mass(9, [MassMessage(9, (0.0,))], 1)

        assert node is None
        assert counts[counters.MISSING_STRUCTURE] == 1
        assert counts[counters.MASS_MESSAGES_RECEIVED] == 1

    def test_duplicate_structure_is_fatal(self) -> None:
        messages = [StructureMessage(3, (1,)), StructureMessage(3, (1,)), MassMessage(3, (0.0,))]

        with pytest.raises(DuplicateStructureError) as exc_info:
            accumulate_mass(3, messages, 1)

        assert exc_info.value.node_id == 3
        assert exc_info.value.structures == 2
        assert exc_info.value.mass_messages == 1


class _ListAccumulator:
    """Stands in for a Spark accumulator when a partition is finalized locally."""

    def __init__(self) -> None:
        self.added: list[Counter] = []

    def add(self, value: Counter) -> None:
        self.added.append(value)


class TestFinalizePartition:
    """Tests for the per-partition step that runs after the shuffle."""

    def test_counts_match_accumulate_mass(self) -> None:
        stage = MassAccumulationStage(PageRankConfig(sources=(1,)))
        kept = [StructureMessage(1, (2,)), MassMessage(1, (HALF,)), MassMessage(1, (HALF,))]
        dropped = [MassMessage(9, (0.0,))]
        records = [
            (1, add_message(add_message(add_message(empty_partial(1), kept[0]), kept[1]), kept[2])),
            (9, add_message(empty_partial(1), dropped[0])),
        ]
        accumulator = _ListAccumulator()

        emitted = list(stage.finalize_partition(records, accumulator))

        expected_node, expected_kept = accumulate_mass(1, kept, 1)
        _, expected_dropped = accumulate_mass(9, dropped, 1)
        assert emitted == [(1, expected_node)]
        assert accumulator.added == [expected_kept + expected_dropped]
        assert accumulator.added[0][counters.MISSING_STRUCTURE] == 1
        assert accumulator.added[0][counters.MASS_MESSAGES_RECEIVED] == 3


class TestCombiner:
    """Tests for the map-side partial merge."""

    def test_merge_partials_matches_single_fold(self) -> None:
        left = add_message(empty_partial(1), MassMessage(1, (HALF,)))
        right = add_message(
            add_message(empty_partial(1), StructureMessage(1, (2, 3))),
            MassMessage(1, (QUARTER,)),
        )
        merged = merge_partials(left, right)

        assert merged.adjacency == (2, 3)
        assert merged.structures == 1
        assert merged.mass_messages == 2
        assert math.exp(merged.masses[0]) == pytest.approx(0.75)

    def test_merge_keeps_structure_from_left(self) -> None:
        left = add_message(empty_partial(1), StructureMessage(1, (4,)))
        merged = merge_partials(left, empty_partial(1))
        assert merged.adjacency == (4,)

    def test_merge_counts_duplicate_structures(self) -> None:
        left = add_message(empty_partial(1), StructureMessage(1, (4,)))
        right = add_message(empty_partial(1), StructureMessage(1, (4,)))
        assert merge_partials(left, right).structures == 2


class TestRangePartitioner:
    """Tests for the node-id range partition function."""

    def test_contiguous_ranges(self) -> None:
        partitioner = RangePartitioner(num_nodes=100, num_partitions=4)

        assert partitioner(0) == 0
        assert partitioner(24) == 0
        assert partitioner(25) == 1
        assert partitioner(99) == 3

    def test_out_of_range_ids_are_clamped(self) -> None:
        partitioner = RangePartitioner(num_nodes=10, num_partitions=2)

        assert partitioner(10) == 1
        assert partitioner(1000) == 1
        assert partitioner(-5) == 0


class TestMassAccumulationStage:
    """Tests for the Spark shuffle + reduce."""

    MESSAGES = [
        (1, StructureMessage(1, (2,))),
        (2, StructureMessage(2, (1,))),
        (2, MassMessage(2, (HALF,))),
        (2, MassMessage(2, (QUARTER,))),
        (1, MassMessage(1, (QUARTER,))),
        (3, MassMessage(3, (math.log(0.125),))),  # no structure for 3
    ]

    @pytest.mark.parametrize("use_combiner", [False, True])
    def test_rebuilds_nodes_and_drops_dangling_references(
        self, sc: SparkContext, use_combiner: bool
    ) -> None:
        config = PageRankConfig(sources=(1,), use_combiner=use_combiner)
        accumulator = sc.accumulator(Counter(), CounterAccumulatorParam())

        messages = sc.parallelize(self.MESSAGES, 3)
        nodes = dict(MassAccumulationStage(config).run(messages, 2, accumulator).collect())

        assert sorted(nodes) == [1, 2]
        assert nodes[1].adjacency == (2,)
        assert math.exp(nodes[1].masses[0]) == pytest.approx(0.25)
        assert math.exp(nodes[2].masses[0]) == pytest.approx(0.75)

        assert accumulator.value[counters.MISSING_STRUCTURE] == 1
        assert accumulator.value[counters.MASS_MESSAGES_RECEIVED] == 4

    def test_range_partitioner(self, sc: SparkContext) -> None:
        config = PageRankConfig(sources=(1,), use_range=True, num_nodes=3)

        messages = sc.parallelize(self.MESSAGES, 2)
        nodes = dict(MassAccumulationStage(config).run(messages, 2).collect())

        assert sorted(nodes) == [1, 2]

    def test_retained_masses_one_value_per_partition(self, sc: SparkContext) -> None:
        config = PageRankConfig(sources=(1,))
        stage = MassAccumulationStage(config)

        snapshot = stage.run(sc.parallelize(self.MESSAGES, 2), 2)
        retained = stage.retained_masses(snapshot)

        assert len(retained) == 2
        total = sum(math.exp(masses[0]) for masses in retained)
        assert total == pytest.approx(1.0)

    def test_duplicate_structure_aborts(self, sc: SparkContext) -> None:
        config = PageRankConfig(sources=(1,))
        messages = sc.parallelize(
            [(1, StructureMessage(1, ())), (1, StructureMessage(1, ()))], 2
        )

        with pytest.raises(Exception, match="Multiple structure received"):
            MassAccumulationStage(config).run(messages, 2).collect()


class TestPartitionRetainedMass:
    """Tests for the per-partition stage result."""

    def test_empty_partition(self) -> None:
        assert list(partition_retained_mass(iter([]), 2)) == [(LOG_ZERO, LOG_ZERO)]

    def test_sums_per_slot(self) -> None:
        records = [
            (1, PageRankNode(1, (), (HALF, LOG_ZERO))),
            (2, PageRankNode(2, (), (HALF, QUARTER))),
        ]
        [total] = list(partition_retained_mass(iter(records), 2))

        assert total[0] == pytest.approx(0.0, abs=1e-12)
        assert total[1] == QUARTER
