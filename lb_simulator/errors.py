"""Error types raised by the simulator core."""


class InvalidServerReference(LookupError):
    """A command referenced a server id that is not in the pool."""

    def __init__(self, server_id: int):
        super().__init__(f"No server with id {server_id!r} in the pool")
        self.server_id = server_id


class PoolInvariantError(RuntimeError):
    """The routing/eligibility contract was violated by the caller.

    Raised instead of silently corrupting pool state; never caught by the
    library.
    """
