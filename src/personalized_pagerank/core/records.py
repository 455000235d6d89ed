"""
Node records and the messages exchanged during a round.

A snapshot is an RDD of (node_id, PageRankNode) pairs. During a round
each node is split into one StructureMessage (its edge list) plus one
MassMessage per out-edge; after the shuffle both kinds are merged back
into a single PageRankNode per id.
"""

from typing import NamedTuple


class PageRankNode(NamedTuple):
    """One graph node: id, out-edges and a log-space mass per source."""

    node_id: int
    adjacency: tuple[int, ...]
    masses: tuple[float, ...]

    @property
    def out_degree(self) -> int:
        return len(self.adjacency)

    def with_masses(self, masses: tuple[float, ...]) -> "PageRankNode":
        return self._replace(masses=masses)


class StructureMessage(NamedTuple):
    """Carries a node's adjacency list through the shuffle unchanged."""

    node_id: int
    adjacency: tuple[int, ...]


class MassMessage(NamedTuple):
    """A partial mass contribution addressed to target_id."""

    target_id: int
    masses: tuple[float, ...]


Message = StructureMessage | MassMessage
