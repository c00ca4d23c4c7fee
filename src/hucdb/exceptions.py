"""
Exceptions for hucdb store operations.
"""


class HucDBError(Exception):
    """Base exception for all hucdb errors."""

    pass


class ConfigError(HucDBError):
    """Invalid store configuration."""

    pass


class InvalidLayoutError(HucDBError):
    """Store root or HUC8 code cannot be addressed."""

    pass


class MalformedFetchResultError(HucDBError):
    """A fetch result is missing metadata required to keep the index consistent."""

    pass


class PersistenceError(HucDBError):
    """Reading or writing a store file failed."""

    pass


class UnknownSiteError(HucDBError, KeyError):
    """A site identifier or name is not present in the metadata index."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages
        return str(self.args[0]) if self.args else ""


class MissingDataFileError(HucDBError):
    """The metadata index references a HUC8 whose data file is absent."""

    pass


class InvalidQueryError(HucDBError, ValueError):
    """A query asked for fields that the metadata index does not have."""

    pass
