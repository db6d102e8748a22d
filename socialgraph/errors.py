"""Error taxonomy shared by every service and mapped onto HTTP responses in main.py."""


class DomainError(Exception):
    """A caller-visible failure. Always propagated, never swallowed."""

    error_code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(DomainError):
    """Referenced record is absent or not owned by the caller."""

    error_code = "NOT_FOUND"
    status_code = 404


class Conflict(DomainError):
    """Write would violate a uniqueness or relationship invariant."""

    error_code = "CONFLICT"
    status_code = 409


class Forbidden(DomainError):
    error_code = "FORBIDDEN"
    status_code = 403


class InvalidArgument(DomainError):
    """Malformed filter, page size, cursor or payload."""

    error_code = "INVALID_ARGUMENT"
    status_code = 422


class IndexConsistencyError(RuntimeError):
    """An index returned an id the store does not hold.

    This is an index-maintenance bug, not a caller error, so it is kept outside
    the DomainError hierarchy and is never retried.
    """

    error_code = "INDEX_CONSISTENCY_FAULT"

    def __init__(self, index_name: str, missing_ids):
        self.index_name = index_name
        self.missing_ids = sorted(missing_ids)
        super().__init__(f"Index {index_name} references missing records {self.missing_ids}")


class Unauthenticated(DomainError):
    """No usable caller identity was supplied by the identity provider."""

    error_code = "UNAUTHENTICATED"
    status_code = 401
