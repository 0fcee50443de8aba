class RepositoryError(Exception):
    """Base class for persistence failures surfaced by repository adapters"""


class StoreError(RepositoryError):
    """The store could not complete the call (connection, timeout, driver error)"""


class DuplicateRecordError(RepositoryError):
    """A uniqueness constraint rejected the write (token hash or active recipient)"""
