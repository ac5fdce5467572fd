"""
Exceptions raised by netdot2cacti.

Every error that should abort a run derives from SyncError; the CLI turns
it into exit code 1.
"""


class SyncError(Exception):
    """Base class for errors that terminate a sync run."""
    pass


class ConfigurationError(SyncError):
    """Missing or invalid settings in the env file or rules file."""
    pass


class SourceError(SyncError):
    """
    Raised when device records cannot be read.

    Covers Netdot database connection/query failures and unreadable
    input files.
    """
    pass


class ValidationError(SyncError):
    """
    Raised when a device record carries an invalid value.

    Validation failures are fatal for the whole run, not per record:
    unknown template id, SNMP version other than 1/2/3, enable flag other
    than 0/1, or a malformed flat-file line.
    """
    pass


class CactiClientError(SyncError):
    """
    Raised for Cacti database or CLI failures.

    Example:
        >>> try:
        ...     host_id = client.save_host(0, record, notes)
        ... except CactiClientError as e:
        ...     print(f"Cacti error: {e}")
    """
    pass
