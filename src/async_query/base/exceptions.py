class ObjectNotFoundException(Exception):
    """Exception raised when an object with the specified identifier does not exist."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class KeyAlreadyExistsException(Exception):
    """Exception raised when trying to insert an entity that would violate a unique constraint."""

    def __init__(self, message: str = "An object with the same key already exists."):
        super().__init__(message)


class NoRowsException(ObjectNotFoundException):
    """Raised by the query helpers when a statement matched no rows."""

    def __init__(self, message: str = "No rows in result set."):
        super().__init__(message)


class DatabaseNotReadyException(RuntimeError):
    def __init__(self, message: str = "Database connection has not been established."):
        super().__init__(message)


class InvalidSortFieldException(ValueError):
    """Raised when a requested sort field is not part of the projection."""

    def __init__(self, fields):
        self.fields = list(fields)
        super().__init__(f"Unknown sort field(s): {', '.join(self.fields)}")
