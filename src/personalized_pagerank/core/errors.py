"""
Exceptions raised by the personalized PageRank pipeline.

Everything derives from PageRankError so callers can catch the whole
family at once. Missing structure records are not errors (they are
counted and logged); duplicate structure records are.
"""


class PageRankError(Exception):
    """Base class for all personalized PageRank failures."""


class ConfigurationError(PageRankError):
    """Invalid run configuration, detected before any round runs."""


class DuplicateStructureError(PageRankError):
    """More than one structure record arrived for the same node id.

    This means the input snapshot is corrupt; there is no safe recovery,
    so the round is aborted.
    """

    def __init__(self, node_id: int, structures: int, mass_messages: int) -> None:
        self.node_id = node_id
        self.structures = structures
        self.mass_messages = mass_messages
        super().__init__(
            f"Multiple structure received for nodeid: {node_id} "
            f"mass: {mass_messages} struct: {structures}"
        )

    def __reduce__(self):
        # Spark ships worker exceptions back through pickle
        return (type(self), (self.node_id, self.structures, self.mass_messages))


class StageFailedError(PageRankError):
    """A Spark action backing one stage of a round did not complete."""

    def __init__(self, stage: str, iteration: int) -> None:
        self.stage = stage
        self.iteration = iteration
        super().__init__(f"Stage {stage!r} failed in iteration {iteration}")

    def __reduce__(self):
        return (type(self), (self.stage, self.iteration))
