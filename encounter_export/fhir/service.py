"""
FHIR Encounter Service

Answers FHIR Encounter searches and bulk export requests.

Orchestrates:
1. Search parameter parsing (_id, patient, date)
2. Record search through the persistence collaborator
3. Record -> Encounter mapping
4. Streaming mapped resources to an export writer
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

from ..config import settings
from .exceptions import ExportException, ExportWillShutdownException
from .export import ExportJob, ExportStreamWriter
from .mappers import EncounterMapper
from .search import (
    PatientContextSearch,
    ProcessingResult,
    SearchField,
    SearchFieldType,
    SearchParameterDefinition,
    ServiceField,
    build_search_fields,
)

logger = logging.getLogger(__name__)


class EncounterRepository(Protocol):
    """Persistence collaborator that executes encounter searches."""

    def search(
        self,
        search_fields: Dict[str, List[SearchField]],
        is_and: bool = True,
        puuid_bind: Optional[str] = None,
    ) -> ProcessingResult:
        """
        Return matching SourceRecords in result order.

        When ``puuid_bind`` is given, only that patient's records may be
        returned, whatever the other filters say.
        """
        ...


def format_search_datetime(value) -> str:
    """Render a datetime as RFC 3339 with milliseconds, e.g. 2023-12-31T00:00:00.000+00:00."""
    return value.isoformat(timespec="milliseconds")


class FhirEncounterService:
    """
    FHIR Encounter resource service.

    Supports search and participates in system, group and patient
    level bulk exports.

    Usage:
        service = FhirEncounterService(SqlEncounterRepository(db))
        result = service.get_all({"patient": "Patient/123"})
        service.export(writer, job)
    """

    def __init__(
        self,
        repository: EncounterRepository,
        mapper: Optional[EncounterMapper] = None,
        patient_search: Optional[PatientContextSearch] = None,
    ):
        """
        Initialize the service.

        Args:
            repository: Executes record searches
            mapper: Record to Encounter mapper (defaults to configured timezone)
            patient_search: Patient compartment search capability
        """
        self.repository = repository
        self.mapper = mapper or EncounterMapper(record_timezone=settings.record_timezone)
        self.patient_search = patient_search or PatientContextSearch()
        self._search_parameters = self.load_search_parameters()

    def load_search_parameters(self) -> Dict[str, SearchParameterDefinition]:
        """Map FHIR Encounter search parameters to internal record fields."""
        return {
            "_id": SearchParameterDefinition(
                "_id", SearchFieldType.TOKEN,
                (ServiceField("euuid", ServiceField.TYPE_UUID),),
            ),
            "patient": self.patient_search.get_patient_context_search_field(),
            "date": SearchParameterDefinition(
                "date", SearchFieldType.DATETIME, (ServiceField("date"),),
            ),
        }

    def get_search_parameters(self) -> Dict[str, SearchParameterDefinition]:
        return dict(self._search_parameters)

    def get_patient_context_search_field(self) -> SearchParameterDefinition:
        return self.patient_search.get_patient_context_search_field()

    def parse_record(self, record: Any, encode: bool = False):
        """Map one source record to an Encounter (or its JSON when ``encode``)."""
        return self.mapper.map(record, encode=encode)

    def search_for_records(
        self,
        search_fields: Dict[str, List[SearchField]],
        puuid_bind: Optional[str] = None,
    ) -> ProcessingResult:
        """
        Search for source records using internal search fields.

        Args:
            search_fields: Parsed search fields keyed by parameter name
            puuid_bind: Only allow visibility of the patient with this puuid
        """
        return self.repository.search(search_fields, True, puuid_bind)

    def get_all(
        self,
        params: Optional[Dict[str, Any]] = None,
        puuid_bind: Optional[str] = None,
    ) -> ProcessingResult:
        """
        Search with FHIR parameters and map every matching record.

        Unsupported or unparseable parameters are reported as validation
        messages and no search is executed.

        Returns:
            ProcessingResult whose data holds Encounter resources in result order
        """
        search_fields, messages = build_search_fields(self._search_parameters, params or {})
        if messages:
            logger.warning("Rejected Encounter search parameters: %s", messages)
            return ProcessingResult(validation_messages=messages)

        records = self.search_for_records(search_fields, puuid_bind)
        result = ProcessingResult(
            validation_messages=dict(records.validation_messages),
            internal_errors=list(records.internal_errors),
        )
        if records.has_errors():
            return result

        for record in records.data:
            result.add_data(self.parse_record(record))
        return result

    def get_one(self, fhir_id: str, puuid_bind: Optional[str] = None) -> ProcessingResult:
        """Fetch a single Encounter by resource id."""
        return self.get_all({"_id": fhir_id}, puuid_bind)

    def export(
        self,
        writer: ExportStreamWriter,
        job: ExportJob,
        last_resource_id_exported: Optional[str] = None,
    ) -> None:
        """
        Stream every Encounter visible as of the job start time to ``writer``.

        ``last_resource_id_exported`` is accepted for interface compatibility
        but is not applied to the query: a resumed export re-sends the whole
        result set.

        Raises:
            ExportWillShutdownException: Export must halt; carries the last
                exported resource id
            ExportCannotEncodeException: A resource could not be encoded
            ExportException: Any other search, mapping or write failure
        """
        # TODO: add a ge<job.resource_include_time> bound for incremental exports
        date = "le" + format_search_datetime(job.start_time)
        if last_resource_id_exported:
            logger.info(
                "Export job %s: resume marker %s is not applied, exporting full result set",
                job.uuid, last_resource_id_exported,
            )

        last_written = None
        count = 0
        try:
            result = self.get_all({"date": date})
            if result.has_errors():
                raise ExportException(
                    f"Encounter search failed: {result.internal_errors or result.validation_messages}"
                )
            for encounter in result.data:
                writer.append(encounter)
                last_written = encounter.id
                count += 1
        except ExportWillShutdownException as e:
            if e.last_resource_id_exported is None:
                e.last_resource_id_exported = last_written or last_resource_id_exported
            logger.info(
                "Export job %s shutting down after %d Encounter resources (last: %s)",
                job.uuid, count, e.last_resource_id_exported,
            )
            raise
        except ExportException:
            raise
        except Exception as e:
            raise ExportException(f"Encounter export failed: {e}") from e

        logger.info("Export job %s: exported %d Encounter resources", job.uuid, count)

    def supports_system_export(self) -> bool:
        """
        Whether this service is called for a system level export.
        @see https://hl7.org/fhir/uv/bulkdata/export/index.html#endpoint---system-level-export
        """
        return True

    def supports_group_export(self) -> bool:
        """
        Whether this service is called for a group level export.
        @see https://hl7.org/fhir/uv/bulkdata/export/index.html#endpoint---group-of-patients
        """
        return True

    def supports_patient_export(self) -> bool:
        """
        Whether this service is called for an all patients export.
        @see https://hl7.org/fhir/uv/bulkdata/export/index.html#endpoint---all-patients
        """
        return True
