"""
Iteration driver for personalized PageRank.

Each round is two Spark phases over the snapshot of iteration i:

  Phase 1: distribute mass along out-edges, shuffle by node id and
           rebuild the nodes (written to iterJJJJt). Every partition
           reports how much mass it retained.
  Phase 2: apply the random jump and hand the mass that leaked at
           dangling nodes back to the sources (written to iterJJJJ).

Between the phases the driver combines the retained mass and works out
the missing mass:

  missing = 1 - exp(total_mass)

By default total_mass comes from slot 0 only and the same missing mass
is applied to every source slot. With several sources whose mass leaks
differently this mixes up their corrections; per_source_missing_mass
computes one value per slot instead.
"""

import logging
import math
import time
from collections import Counter
from collections.abc import Sequence
from enum import Enum
from typing import NamedTuple

from pyspark import SparkContext

from personalized_pagerank.core.config import PageRankConfig
from personalized_pagerank.core.counters import CounterAccumulatorParam, format_counters
from personalized_pagerank.core.errors import PageRankError, StageFailedError
from personalized_pagerank.core.log_space import sum_all_log_probs
from personalized_pagerank.snapshots import (
    iteration_path,
    pre_correction_path,
    read_snapshot,
    write_snapshot,
)
from personalized_pagerank.stages.accumulation import MassAccumulationStage
from personalized_pagerank.stages.distribution import MassDistributionStage
from personalized_pagerank.stages.redistribution import DanglingMassRedistributionStage

logger = logging.getLogger(__name__)


class DriverState(Enum):
    IDLE = "idle"
    RUNNING_DISTRIBUTION = "running_distribution"
    RUNNING_ACCUMULATION = "running_accumulation"
    RUNNING_REDISTRIBUTION = "running_redistribution"
    DONE = "done"


class IterationResult(NamedTuple):
    """What the driver learned while producing one iteration."""

    iteration: int
    total_masses: tuple[float, ...]
    missing_masses: tuple[float, ...]
    counters: Counter


def combine_retained_masses(
    partition_masses: Sequence[Sequence[float]], num_sources: int
) -> tuple[float, ...]:
    """logsum the per-partition retained mass vectors, slot by slot."""
    return tuple(
        sum_all_log_probs(masses[slot] for masses in partition_masses)
        for slot in range(num_sources)
    )


def compute_missing_masses(
    total_masses: Sequence[float], per_source: bool = False
) -> tuple[float, ...]:
    """Probability-scale mass lost this round, one value per slot.

    Not clamped to [0, 1]: a tiny negative value from rounding turns into
    -inf once it reaches log space.
    """
    if per_source:
        return tuple(1.0 - math.exp(mass) for mass in total_masses)

    missing = 1.0 - math.exp(total_masses[0])
    return (missing,) * len(total_masses)


class PageRankDriver:
    """Runs rounds start..end, reading and writing snapshots under base_path."""

    def __init__(self, sc: SparkContext, config: PageRankConfig) -> None:
        self.sc = sc
        self.config = config
        self.state = DriverState.IDLE

        self.distribution = MassDistributionStage(config)
        self.accumulation = MassAccumulationStage(config)

    def _transition(self, state: DriverState) -> None:
        logger.debug("Driver state: %s -> %s", self.state.value, state.value)
        self.state = state

    def run(self) -> list[IterationResult]:
        config = self.config

        logger.info("Tool name: RunPersonalizedPageRank")
        logger.info(" - base path: %s", config.base_path)
        logger.info(" - num nodes: %d", config.num_nodes)
        logger.info(" - start iteration: %d", config.start)
        logger.info(" - end iteration: %d", config.end)
        logger.info(" - use combiner: %s", config.use_combiner)
        logger.info(" - use range partitioner: %s", config.use_range)
        logger.info(" - sources: %s", ",".join(str(s) for s in config.sources))
        logger.info(" - alpha: %s", config.alpha)

        if config.num_sources > 1 and not config.per_source_missing_mass:
            logger.warning(
                "Missing mass is computed from source slot 0 only and applied to all %d "
                "sources; enable per_source_missing_mass to track each source separately",
                config.num_sources,
            )

        results = []
        for i in range(config.start, config.end):
            results.append(self.iterate(i, i + 1))

        self._transition(DriverState.DONE)
        return results

    def iterate(self, i: int, j: int) -> IterationResult:
        """Produce iteration j from iteration i."""
        accumulator = self.sc.accumulator(Counter(), CounterAccumulatorParam())

        # Phase 1: distribute mass along outgoing edges
        total_masses = self.phase1(i, j, accumulator)

        # Find out how much mass got lost at the dangling nodes
        missing_masses = compute_missing_masses(
            total_masses, self.config.per_source_missing_mass
        )

        # Phase 2: distribute missing mass, take care of the random jump
        self.phase2(j, missing_masses)

        result = IterationResult(j, total_masses, missing_masses, Counter(accumulator.value))
        logger.info("Iteration %d counters: %s", j, format_counters(result.counters))
        return result

    def phase1(self, i: int, j: int, accumulator) -> tuple[float, ...]:
        base_path = self.config.base_path
        in_path = iteration_path(base_path, i)
        out_path = pre_correction_path(base_path, j)

        snapshot = read_snapshot(self.sc, in_path)
        num_partitions = snapshot.getNumPartitions()

        logger.info("PageRank: iteration %d: Phase1", j)
        logger.info(" - input: %s", in_path)
        logger.info(" - output: %s", out_path)
        logger.info(" - nodeCnt: %d", self.config.num_nodes)
        logger.info("computed number of partitions: %d", num_partitions)

        self.sc.setJobDescription(f"PageRank:Basic:iteration{j}:Phase1")
        start_time = time.perf_counter()

        try:
            self._transition(DriverState.RUNNING_DISTRIBUTION)
            messages = self.distribution.run(snapshot, accumulator)

            self._transition(DriverState.RUNNING_ACCUMULATION)
            accumulated = self.accumulation.run(messages, num_partitions, accumulator).cache()
            write_snapshot(self.sc, accumulated, out_path)
            partition_masses = self.accumulation.retained_masses(accumulated)
            accumulated.unpersist()
        except PageRankError:
            raise
        except Exception as exc:
            raise StageFailedError(self.state.value, j) from exc

        logger.info("Phase1 finished in %.3f seconds", time.perf_counter() - start_time)
        return combine_retained_masses(partition_masses, self.config.num_sources)

    def phase2(self, j: int, missing_masses: Sequence[float]) -> None:
        base_path = self.config.base_path
        in_path = pre_correction_path(base_path, j)
        out_path = iteration_path(base_path, j)

        for slot, missing in enumerate(missing_masses):
            if missing < 0.0:
                logger.debug("Negative missing mass %g for slot %d treated as zero", missing, slot)

        logger.info("missing PageRank mass: %s", ", ".join(f"{m:.6g}" for m in missing_masses))
        logger.info("number of nodes: %d", self.config.num_nodes)
        logger.info("PageRank: iteration %d: Phase2", j)
        logger.info(" - input: %s", in_path)
        logger.info(" - output: %s", out_path)

        self.sc.setJobDescription(f"PageRank:Basic:iteration{j}:Phase2")
        start_time = time.perf_counter()

        try:
            self._transition(DriverState.RUNNING_REDISTRIBUTION)
            stage = DanglingMassRedistributionStage(self.config, missing_masses)
            write_snapshot(self.sc, stage.run(read_snapshot(self.sc, in_path)), out_path)
        except PageRankError:
            raise
        except Exception as exc:
            raise StageFailedError(self.state.value, j) from exc

        logger.info("Phase2 finished in %.3f seconds", time.perf_counter() - start_time)
