"""Encounter record to FHIR R4 mapping and bulk export."""
