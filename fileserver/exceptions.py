"""Custom exception classes for the file server."""


class TransferException(Exception):
    """
    Base exception class for all file server errors.
    """
    pass


class AccessDeniedError(TransferException):
    """
    Raised when a path resolves outside the shared root.
    """
    pass


class PathNotFoundError(TransferException):
    """
    Raised when a requested file or directory does not exist.
    """
    pass


class BadRequestError(TransferException):
    """
    Raised when a required parameter is missing or empty.
    """
    pass


class PartialFailureError(TransferException):
    """
    Raised when one or more files of an upload batch could not be relocated.
    """

    def __init__(self, message: str, outcomes=None):
        super().__init__(message)
        self.outcomes = list(outcomes or [])


class StreamError(TransferException):
    """
    Raised when a transfer fails before any byte reached the client.
    """
    pass


class InternalError(TransferException):
    """
    Raised on unexpected filesystem failures (e.g. unreadable directory).
    """
    pass
