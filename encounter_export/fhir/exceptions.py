"""
Bulk export exceptions.

Callers distinguish a cooperative shutdown (persist the resumption
marker and stop quietly) from real failures (alert, retry the job).
"""
from typing import Optional


class ExportException(Exception):
    """Fatal failure while searching, mapping or writing during an export."""


class ExportCannotEncodeException(ExportException):
    """A resource could not be serialized to the export output format."""


class ExportWillShutdownException(ExportException):
    """
    The export is being shut down and all processing must halt.

    Attributes:
        last_resource_id_exported: Id of the last resource written before
            the shutdown, usable as a resumption marker
    """

    def __init__(self, message: str = "Export is shutting down",
                 last_resource_id_exported: Optional[str] = None):
        super().__init__(message)
        self.last_resource_id_exported = last_resource_id_exported
