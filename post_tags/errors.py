class MigrationError(RuntimeError):
    """Base class for errors that abort a migration run."""


class ConfigError(MigrationError):
    pass


class DestinationTableExistsError(MigrationError):
    pass


class StorageError(MigrationError):
    pass
