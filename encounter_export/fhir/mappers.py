"""
FHIR Encounter Mapper

Maps an internal encounter record to a FHIR R4 Encounter resource
(US Core Encounter profile) using the fhir.resources library for
spec compliance.

Every field rule is conditioned on presence in the source record.
Required elements (class, subject) are never omitted: an explicit
data-absent marker is emitted when the source value is missing.
"""
from typing import Optional, Dict, Any, Union
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from fhir.resources.R4B.encounter import Encounter

from ..schemas import SourceRecord
from .constants import (
    CodeSystems,
    DEFAULT_CODE_SYSTEMS,
    ENCOUNTER_STATUS_FINISHED,
    ENCOUNTER_TYPE_CHECK_UP,
    ENCOUNTER_TYPE_CHECK_UP_DESCRIPTION,
    ENCOUNTER_PARTICIPANT_TYPE_PRIMARY_PERFORMER,
    ENCOUNTER_PARTICIPANT_TYPE_PRIMARY_PERFORMER_TEXT,
    DATA_ABSENT_UNKNOWN_CODE,
    DATA_ABSENT_UNKNOWN_DISPLAY,
    META_VERSION_ID,
)


def utc_now_iso() -> str:
    """Current UTC time in extended ISO-8601 form (seconds precision)."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def to_utc_iso(value: datetime, record_timezone: str = "UTC") -> str:
    """
    Convert a stored encounter timestamp to an extended ISO-8601 UTC string.

    Naive timestamps are wall-clock time in ``record_timezone``; they are
    localised first and then shifted to UTC, e.g. ``2023-01-01T05:00:00+00:00``.

    Args:
        value: Stored timestamp (naive or aware)
        record_timezone: IANA zone the persistence layer stores naive times in

    Returns:
        ISO-8601 string with a +00:00 offset
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(record_timezone))
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def create_relative_reference(resource_type: str, resource_id: str) -> Dict[str, str]:
    """Build a relative Reference such as ``Patient/123``."""
    return {"reference": f"{resource_type}/{resource_id}"}


def create_codeable_concept(
    codes: Dict[str, Optional[str]],
    system: str,
) -> Dict[str, Any]:
    """Build a CodeableConcept with one coding per code => display pair."""
    codings = []
    for code, display in codes.items():
        coding = {"system": system, "code": code}
        if display:
            coding["display"] = display
        codings.append(coding)
    return {"coding": codings}


class EncounterMapper:
    """
    Maps a SourceRecord to a FHIR R4 Encounter resource.

    Usage:
        mapper = EncounterMapper()
        encounter = mapper.map(record)
    """

    def __init__(
        self,
        code_systems: CodeSystems = DEFAULT_CODE_SYSTEMS,
        record_timezone: str = "UTC",
    ):
        """
        Initialize the mapper.

        Args:
            code_systems: Code system namespaces to emit
            record_timezone: Zone naive source timestamps are stored in
        """
        self.code_systems = code_systems
        self.record_timezone = record_timezone

    def map(
        self,
        record: Union[SourceRecord, Dict[str, Any]],
        encode: bool = False,
    ) -> Union[Encounter, str]:
        """
        Convert an encounter record to a FHIR Encounter resource.

        Args:
            record: Source record (raw dicts are validated into SourceRecord)
            encode: Return the resource serialized as JSON instead

        Returns:
            FHIR Encounter resource, or its JSON string when ``encode`` is set
        """
        if not isinstance(record, SourceRecord):
            record = SourceRecord.model_validate(record)

        systems = self.code_systems

        encounter_dict = {
            "resourceType": "Encounter",
            "id": record.euuid,
            "meta": {
                "versionId": META_VERSION_ID,
                "lastUpdated": utc_now_iso(),
            },
            # identifier - required
            "identifier": [{
                "system": systems.identifier,
                "value": record.euuid,
            }],
            # status - required
            "status": ENCOUNTER_STATUS_FINISHED,
            "class": self._map_class(record),
            # Only the check-up type is ever emitted
            "type": [create_codeable_concept(
                {ENCOUNTER_TYPE_CHECK_UP: ENCOUNTER_TYPE_CHECK_UP_DESCRIPTION},
                systems.snomed_ct,
            )],
            # subject - required
            "subject": self._map_subject(record),
        }

        # participant - must support
        if record.provider_uuid:
            encounter_dict["participant"] = [self._map_participant(record)]

        # period - must support
        if record.date:
            encounter_dict["period"] = {"start": self._format_date(record.date)}

        # reasonCode - textual representation, not coded
        if record.reason:
            encounter_dict["reasonCode"] = [{"text": record.reason}]

        # hospitalization.dischargeDisposition - must support
        if record.discharge_disposition:
            encounter_dict["hospitalization"] = {
                "dischargeDisposition": create_codeable_concept(
                    {record.discharge_disposition: record.discharge_disposition_text},
                    systems.discharge_disposition,
                )
            }

        # serviceProvider and location.location - location needs the facility too
        if record.facility_uuid:
            encounter_dict["serviceProvider"] = create_relative_reference(
                "Organization", record.facility_uuid
            )
            if record.facility_location_uuid:
                encounter_dict["location"] = [{
                    "location": create_relative_reference(
                        "Location", record.facility_location_uuid
                    )
                }]

        encounter = Encounter(**encounter_dict)

        if encode:
            return encounter.model_dump_json()
        return encounter

    def _map_class(self, record: SourceRecord) -> Dict[str, Any]:
        """Class coding, or the data-absent 'unknown' coding."""
        if record.class_code:
            coding = {
                "system": self.code_systems.act_code,
                "code": record.class_code,
            }
            if record.class_title:
                coding["display"] = record.class_title
            return coding
        return {
            "system": self.code_systems.data_absent_reason,
            "code": DATA_ABSENT_UNKNOWN_CODE,
            "display": DATA_ABSENT_UNKNOWN_DISPLAY,
        }

    def _map_subject(self, record: SourceRecord) -> Dict[str, Any]:
        """Patient reference, or a reference carrying only the data-absent extension."""
        if record.puuid:
            return create_relative_reference("Patient", record.puuid)
        return {
            "extension": [{
                "url": self.code_systems.data_absent_reason_extension,
                "valueCode": DATA_ABSENT_UNKNOWN_CODE,
            }]
        }

    def _map_participant(self, record: SourceRecord) -> Dict[str, Any]:
        """Primary performer participant for the encounter provider."""
        participant = {
            "type": [create_codeable_concept(
                {ENCOUNTER_PARTICIPANT_TYPE_PRIMARY_PERFORMER:
                    ENCOUNTER_PARTICIPANT_TYPE_PRIMARY_PERFORMER_TEXT},
                self.code_systems.participation_type,
            )],
            "individual": create_relative_reference("Practitioner", record.provider_uuid),
        }
        if record.date:
            participant["period"] = {"start": self._format_date(record.date)}
        return participant

    def _format_date(self, value: datetime) -> str:
        return to_utc_iso(value, self.record_timezone)
