"""Core domain errors."""


class FileCacherError(Exception):
    """Base error for FileCacher."""

    pass


class ConfigurationError(FileCacherError):
    """Invalid or missing configuration value."""

    pass


class TaskStoreError(FileCacherError):
    """Task store call failed after all retries."""

    pass


class ArchiveError(FileCacherError):
    """Archive listing or download failed."""

    pass


class ArchiveOfflineError(ArchiveError):
    """Archive could not be reached."""

    pass


class FreeSpaceError(FileCacherError):
    """Free disk space could not be determined."""

    pass


class CapacityError(FileCacherError):
    """Free space is below the floor and nothing is left to purge."""

    pass


class RunawayLoopError(FileCacherError):
    """Eviction loop exceeded its iteration ceiling."""

    pass
