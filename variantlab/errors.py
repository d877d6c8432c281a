"""Error types raised by variantlab.

Configuration errors are raised synchronously when an experiment, selection
context or report range is invalid. Storage errors are raised when the event
log directory or a day-file cannot be created, written or read.
"""


class VariantLabError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(VariantLabError, ValueError):
    pass


class StorageError(VariantLabError, OSError):
    pass
