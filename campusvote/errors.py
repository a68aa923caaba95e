# campusvote/errors.py
# Errors raised by the storage layer; routes translate them into HTTP responses


class CampusVoteError(Exception):
    """Base class for application errors."""


class NotFoundError(CampusVoteError):
    pass


class ConflictError(CampusVoteError):
    """Duplicate record, or an operation the record's current state forbids."""


class InvalidIdError(CampusVoteError):
    pass
