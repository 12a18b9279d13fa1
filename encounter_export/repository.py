"""
SQL encounter repository

SQLAlchemy implementation of the EncounterRepository collaborator:
turns parsed search fields into SQL predicates over the encounters
table and validates each row into a SourceRecord.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .fhir.search import ProcessingResult, SearchComparator, SearchField, SearchFieldType
from .models import EncounterRow
from .schemas import SourceRecord

logger = logging.getLogger(__name__)


class SqlEncounterRepository:
    """Executes encounter searches against the encounters table."""

    def __init__(self, db: Session, record_timezone: Optional[str] = None):
        """
        Args:
            db: SQLAlchemy session
            record_timezone: Zone naive stored timestamps are in (defaults to settings)
        """
        self.db = db
        self.record_timezone = record_timezone or settings.record_timezone

    def search(
        self,
        search_fields: Dict[str, List[SearchField]],
        is_and: bool = True,
        puuid_bind: Optional[str] = None,
    ) -> ProcessingResult:
        """
        Search encounter rows.

        Args:
            search_fields: Parsed search fields keyed by parameter name
            is_and: Combine parameters with AND (True) or OR (False)
            puuid_bind: Restrict results to this patient, always ANDed

        Returns:
            ProcessingResult of SourceRecords ordered by date then euuid
        """
        result = ProcessingResult()
        try:
            predicates = [
                self._field_predicate(search_field)
                for fields in search_fields.values()
                for search_field in fields
            ]
        except ValueError as e:
            result.validation_messages["search"] = str(e)
            return result

        query = self.db.query(EncounterRow)
        if predicates:
            query = query.filter(and_(*predicates) if is_and else or_(*predicates))
        if puuid_bind is not None:
            query = query.filter(EncounterRow.puuid == puuid_bind)
        query = query.order_by(EncounterRow.date, EncounterRow.euuid)

        try:
            rows = query.all()
        except SQLAlchemyError as e:
            logger.error("Encounter search failed: %s", e)
            result.internal_errors.append(f"Encounter search failed: {e}")
            return result

        for row in rows:
            result.add_data(SourceRecord.model_validate(row))
        return result

    def _field_predicate(self, search_field: SearchField):
        column = getattr(EncounterRow, search_field.name, None)
        if column is None:
            raise ValueError(f"Unknown encounter field '{search_field.name}'")

        clauses = []
        for search_value in search_field.values:
            if search_field.field_type == SearchFieldType.DATETIME:
                lower = self._to_stored_time(search_value.value)
                upper = lower if search_value.upper is None else self._to_stored_time(search_value.upper)
                clauses.append(self._compare(column, search_value.comparator, lower, upper))
            else:
                clauses.append(column == search_value.value)
        return or_(*clauses)

    def _to_stored_time(self, value: datetime) -> datetime:
        """Aware search values are shifted into the naive stored timezone."""
        if value.tzinfo is None:
            return value
        return value.astimezone(ZoneInfo(self.record_timezone)).replace(tzinfo=None)

    @staticmethod
    def _compare(column, comparator: SearchComparator, lower, upper):
        """
        Compare a column against the period [lower, upper).

        Point values have upper == lower and compare as plain instants.
        """
        if upper == lower:
            upper_match, upper_miss = column <= upper, column > upper
        else:
            upper_match, upper_miss = column < upper, column >= upper

        if comparator == SearchComparator.EQ:
            return and_(column >= lower, upper_match)
        if comparator == SearchComparator.NE:
            return or_(column < lower, upper_miss)
        if comparator == SearchComparator.GT:
            return upper_miss
        if comparator == SearchComparator.LT:
            return column < lower
        if comparator == SearchComparator.GE:
            return column >= lower
        if comparator == SearchComparator.LE:
            return upper_match
        raise ValueError(f"Unsupported comparator '{comparator}'")
