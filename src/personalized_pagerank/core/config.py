"""
Immutable run configuration shared by the driver and every stage.

The ordered source list defines both the number of mass slots per node
and which node id owns each slot. The config is validated once at
construction, so an empty source list aborts the run before any Spark
job is submitted.
"""

from dataclasses import dataclass

from personalized_pagerank.core.errors import ConfigurationError

# Random jump factor
DEFAULT_ALPHA = 0.15
DEFAULT_BASE_PATH = ".output/pagerank"


def parse_sources(value: str) -> tuple[int, ...]:
    """Parse a comma separated list of node ids, e.g. '3,17,42'."""
    parts = [part.strip() for part in value.split(",")]
    try:
        return tuple(int(part) for part in parts if part)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid source list {value!r}: {exc}") from exc


@dataclass(frozen=True)
class PageRankConfig:
    """Everything a round needs to know, fixed for the whole run.

    Attributes:
        sources: Ordered source node ids; slot i belongs to sources[i]
        alpha: Teleport probability applied every round
        base_path: Directory (or Hadoop URI) holding the iterXXXX snapshots
        start: First iteration to read
        end: Last iteration to write
        num_nodes: Total node count, required by the range partitioner
        use_combiner: Pre-merge mass messages before the shuffle
        use_range: Partition node ids by contiguous ranges instead of hashing
        per_source_missing_mass: Track leaked mass per slot instead of
            reusing slot 0's value for every source
    """

    sources: tuple[int, ...]
    alpha: float = DEFAULT_ALPHA
    base_path: str = DEFAULT_BASE_PATH
    start: int = 0
    end: int = 1
    num_nodes: int = 0
    use_combiner: bool = False
    use_range: bool = False
    per_source_missing_mass: bool = False

    def __post_init__(self) -> None:
        # Accept any iterable of ids but store a tuple so the config stays hashable
        object.__setattr__(self, "sources", tuple(int(s) for s in self.sources))

        if len(self.sources) == 0:
            raise ConfigurationError("Source list cannot be empty!")
        if not 0.0 < self.alpha < 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.start < 0 or self.end < self.start:
            raise ConfigurationError(
                f"Invalid iteration range: start={self.start}, end={self.end}"
            )
        if self.num_nodes < 0:
            raise ConfigurationError(f"num_nodes must be >= 0, got {self.num_nodes}")
        if self.use_range and self.num_nodes == 0:
            raise ConfigurationError("The range partitioner needs num_nodes > 0")

    @property
    def num_sources(self) -> int:
        return len(self.sources)

    def is_source(self, node_id: int, slot: int) -> bool:
        return self.sources[slot] == node_id
