"""Custom exception classes for the incremental store."""


class IncrestoreError(Exception):
    """
    Base exception class for all store errors.
    """
    pass


class StorageIOError(IncrestoreError, OSError):
    """
    Raised when reading or writing the payload area or the index fails.
    """
    pass


class IntegrityError(IncrestoreError):
    """
    Raised when a hash or length check fails on write, read or reconstruction.
    """
    pass


class NotFoundError(IncrestoreError, LookupError):
    """
    Raised when a file name, version or chunk does not exist.
    """
    pass


class ConflictError(IncrestoreError):
    """
    Raised when a version commit does not follow the current latest version.
    """
    pass


class ConfigMismatchError(IncrestoreError):
    """
    Raised when a workdir is opened with chunking parameters that differ from
    the ones it was created with.
    """
    pass
