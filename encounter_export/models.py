from sqlalchemy import Column, Integer, String, Text, DateTime

from .database import Base


class EncounterRow(Base):
    """
    Flattened encounter row as produced by the persistence layer.
    
    Column names match the source record fields consumed by the
    FHIR Encounter mapper. Timestamps are stored naive, in the
    configured record timezone.
    """
    __tablename__ = "encounters"
    
    id = Column(Integer, primary_key=True, index=True)
    euuid = Column(String(64), unique=True, nullable=False, index=True)
    puuid = Column(String(64), nullable=True, index=True)
    provider_uuid = Column(String(64), nullable=True)
    facility_uuid = Column(String(64), nullable=True)
    facility_location_uuid = Column(String(64), nullable=True)
    class_code = Column(String(31), nullable=True)
    class_title = Column(String(255), nullable=True)
    date = Column(DateTime, nullable=True, index=True)
    reason = Column(Text, nullable=True)
    discharge_disposition = Column(String(31), nullable=True)
    discharge_disposition_text = Column(String(255), nullable=True)
