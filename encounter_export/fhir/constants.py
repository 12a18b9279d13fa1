"""
Code system namespaces and fixed codes used by the Encounter mapper.

CodeSystems is immutable and injected into the mapper, so tests (or a
deployment targeting a different profile) can swap namespaces without
touching module globals.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class CodeSystems:
    """URIs of the code systems referenced by mapped resources."""
    identifier: str = "urn:ietf:rfc:3986"
    act_code: str = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
    snomed_ct: str = "http://snomed.info/sct"
    participation_type: str = "http://terminology.hl7.org/CodeSystem/v3-ParticipationType"
    discharge_disposition: str = "http://terminology.hl7.org/CodeSystem/discharge-disposition"
    data_absent_reason: str = "http://terminology.hl7.org/CodeSystem/data-absent-reason"
    data_absent_reason_extension: str = "http://hl7.org/fhir/StructureDefinition/data-absent-reason"


DEFAULT_CODE_SYSTEMS = CodeSystems()

ENCOUNTER_STATUS_FINISHED = "finished"

# Only one encounter type is ever emitted (known limitation)
ENCOUNTER_TYPE_CHECK_UP = "185349003"
ENCOUNTER_TYPE_CHECK_UP_DESCRIPTION = "Encounter for check up (procedure)"

ENCOUNTER_PARTICIPANT_TYPE_PRIMARY_PERFORMER = "PPRF"
ENCOUNTER_PARTICIPANT_TYPE_PRIMARY_PERFORMER_TEXT = "Primary Performer"

DATA_ABSENT_UNKNOWN_CODE = "unknown"
DATA_ABSENT_UNKNOWN_DISPLAY = "Unknown"

META_VERSION_ID = "1"
