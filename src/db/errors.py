class BackendError(Exception):
    """Raised when a query, mutation or RPC against the backend fails."""


class NotFoundError(BackendError):
    """The row a mutation targets does not exist."""


class StorageError(BackendError):
    """Object storage rejected an upload or a path."""
