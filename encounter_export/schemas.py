from pydantic import BaseModel, Field, field_validator
from datetime import date as date_type, datetime
from typing import Optional


# Source record schema (boundary between persistence and the mapper)
class SourceRecord(BaseModel):
    """
    One encounter row from the persistence layer.

    Optional fields may arrive absent or as empty strings; both are
    normalised to None so the mapper only has to test for presence.
    """
    euuid: str = Field(..., min_length=1)
    puuid: Optional[str] = None
    provider_uuid: Optional[str] = None
    facility_uuid: Optional[str] = None
    facility_location_uuid: Optional[str] = None
    class_code: Optional[str] = None
    class_title: Optional[str] = None
    date: Optional[datetime] = None
    reason: Optional[str] = None
    discharge_disposition: Optional[str] = None
    discharge_disposition_text: Optional[str] = None

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator(
        "puuid", "provider_uuid", "facility_uuid", "facility_location_uuid",
        "class_code", "class_title", "reason",
        "discharge_disposition", "discharge_disposition_text",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, value):
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, date_type):
            return datetime.combine(value, datetime.min.time())
        if isinstance(value, str):
            value = value.strip()
            if not value or value.startswith("0000-00-00"):
                return None
            # Stored timestamps use either "T" or a space separator
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        return value
