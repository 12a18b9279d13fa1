"""
FHIR Encounter Module

Maps internal encounter records to FHIR R4 Encounter resources using
the fhir.resources library, and streams them for bulk export.

Components:
- mappers: Record -> Encounter mapper
- search: Supported search parameters and result wrapper
- service: Encounter search and export service
- export: Export job, NDJSON writer and export interfaces
"""
from .mappers import EncounterMapper
from .service import FhirEncounterService, EncounterRepository
from .export import ExportJob, NdjsonStreamWriter
from .exceptions import (
    ExportException,
    ExportCannotEncodeException,
    ExportWillShutdownException,
)

__all__ = [
    "EncounterMapper",
    "FhirEncounterService",
    "EncounterRepository",
    "ExportJob",
    "NdjsonStreamWriter",
    "ExportException",
    "ExportCannotEncodeException",
    "ExportWillShutdownException",
]
