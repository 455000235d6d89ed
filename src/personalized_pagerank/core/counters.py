"""
Observability counters for a PageRank round.

Stage functions return plain collections.Counter values; the Spark layer
sums them into a single accumulator that the driver reads after each
stage. Nothing in the algorithm's control flow depends on them.
"""

from collections import Counter

from pyspark.accumulators import AccumulatorParam

NODES = "nodes"
EDGES = "edges"
MASS_MESSAGES = "mass_messages"
MASS_MESSAGES_RECEIVED = "mass_messages_received"
MISSING_STRUCTURE = "missing_structure"

ALL_COUNTERS = (NODES, EDGES, MASS_MESSAGES, MASS_MESSAGES_RECEIVED, MISSING_STRUCTURE)


class CounterAccumulatorParam(AccumulatorParam):
    """Lets a Spark accumulator hold a collections.Counter."""

    def zero(self, value: Counter) -> Counter:
        return Counter()

    def addInPlace(self, value1: Counter, value2: Counter) -> Counter:
        value1.update(value2)
        return value1


def format_counters(counters: Counter) -> str:
    """Render counters as 'name=value' pairs in a stable order."""
    return ", ".join(f"{name}={counters.get(name, 0)}" for name in ALL_COUNTERS)
