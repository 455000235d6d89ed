"""
Dangling mass redistribution and the random jump.

Runs after accumulation, with no shuffle. For every slot i:

  source node of slot i:
    new = logsum(log(alpha), log(1 - alpha) + logsum(mass[i], log(missing[i])))
  any other node:
    new = log(1 - alpha) + mass[i]

The source receives the whole teleport jump plus all mass that leaked
this round. Ordinary nodes only keep their damped link mass: in
personalized PageRank the jump always lands on the source set.
"""

import math
from collections.abc import Sequence

from pyspark import RDD

from personalized_pagerank.core.config import PageRankConfig
from personalized_pagerank.core.log_space import log_prob, sum_log_probs
from personalized_pagerank.core.records import PageRankNode


def redistribute_masses(
    node_id: int,
    masses: Sequence[float],
    missing_masses: Sequence[float],
    config: PageRankConfig,
) -> tuple[float, ...]:
    """Apply the jump and missing-mass correction to one mass vector.

    missing_masses holds one probability-scale value per slot.
    """
    log_jump = math.log(config.alpha)
    log_link = math.log(1.0 - config.alpha)

    corrected = []
    for slot, mass in enumerate(masses):
        if config.is_source(node_id, slot):
            link = log_link + sum_log_probs(mass, log_prob(missing_masses[slot]))
            corrected.append(sum_log_probs(log_jump, link))
        else:
            corrected.append(log_link + mass)
    return tuple(corrected)


class DanglingMassRedistributionStage:
    """Per-node correction with the round's missing mass fixed at construction."""

    def __init__(self, config: PageRankConfig, missing_masses: Sequence[float]) -> None:
        if len(missing_masses) != config.num_sources:
            raise ValueError(
                f"Expected {config.num_sources} missing mass values, got {len(missing_masses)}"
            )
        self.config = config
        self.missing_masses = tuple(missing_masses)

    def redistribute(self, node: PageRankNode) -> PageRankNode:
        return node.with_masses(
            redistribute_masses(node.node_id, node.masses, self.missing_masses, self.config)
        )

    def run(self, snapshot: RDD) -> RDD:
        """Pre-correction snapshot -> final snapshot, partitioning preserved."""
        return snapshot.mapValues(self.redistribute)
