"""Domain errors shared by repositories and services."""


class StorageUnavailable(Exception):
    """Backing store could not be reached or rejected a write."""
