"""
FHIR Bulk Export primitives

Job context, the NDJSON stream writer that receives exported
resources, and the interfaces an exportable resource service
implements.

See https://hl7.org/fhir/uv/bulkdata/export/index.html
"""
import logging
from uuid import uuid4
from datetime import datetime, timezone
from typing import List, Literal, Optional, Protocol, TextIO, runtime_checkable

from pydantic import BaseModel, Field, field_validator
from fhir.resources.R4B.resource import Resource

from .exceptions import ExportCannotEncodeException, ExportWillShutdownException

logger = logging.getLogger(__name__)

NDJSON_FORMAT = "application/fhir+ndjson"


class ExportJob(BaseModel):
    """
    Context for one bulk export request.

    Read-only to the resource services that process it. Naive
    timestamps are taken to be UTC.
    """
    uuid: str = Field(default_factory=lambda: str(uuid4()))
    export_type: Literal["system", "group", "patient"] = "system"
    group_id: Optional[str] = None
    output_format: str = NDJSON_FORMAT
    resources: List[str] = Field(default_factory=lambda: ["Encounter"])
    start_time: datetime
    resource_include_time: Optional[datetime] = None
    last_exported_id: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("start_time", "resource_include_time")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


@runtime_checkable
class ExportStreamWriter(Protocol):
    """Sink that receives exported resources one at a time."""

    def append(self, resource: Resource) -> None:
        ...


@runtime_checkable
class ExportableResourceService(Protocol):
    """A resource service that participates in bulk export operations."""

    def export(
        self,
        writer: ExportStreamWriter,
        job: ExportJob,
        last_resource_id_exported: Optional[str] = None,
    ) -> None:
        ...

    def supports_system_export(self) -> bool:
        ...

    def supports_group_export(self) -> bool:
        ...

    def supports_patient_export(self) -> bool:
        ...


class NdjsonStreamWriter:
    """
    Writes resources to a text stream as newline-delimited JSON.

    An optional shutdown time makes the writer refuse further writes once
    it has passed, signalling a cooperative shutdown to the export loop.
    """

    def __init__(self, stream: TextIO, shutdown_time: Optional[datetime] = None):
        """
        Args:
            stream: Writable text stream (file, StringIO, ...)
            shutdown_time: Aware datetime after which appends raise
                ExportWillShutdownException
        """
        self.stream = stream
        self.shutdown_time = shutdown_time
        self.record_count = 0
        self.last_resource_id: Optional[str] = None

    def append(self, resource: Resource) -> None:
        """
        Serialize a resource and write it as one line.

        Raises:
            ExportWillShutdownException: The shutdown time has passed
            ExportCannotEncodeException: The resource cannot be serialized
        """
        if self.is_shutting_down():
            logger.warning("Export stream shutdown time %s reached after %d resources",
                           self.shutdown_time, self.record_count)
            raise ExportWillShutdownException(
                "Export stream reached its shutdown time",
                last_resource_id_exported=self.last_resource_id,
            )

        try:
            line = resource.model_dump_json()
        except (TypeError, ValueError) as e:
            raise ExportCannotEncodeException(
                f"Cannot encode resource {getattr(resource, 'id', None)!r} as NDJSON: {e}"
            ) from e

        self.stream.write(line + "\n")
        self.record_count += 1
        self.last_resource_id = resource.id

    def is_shutting_down(self) -> bool:
        if self.shutdown_time is None:
            return False
        return datetime.now(timezone.utc) >= self.shutdown_time
