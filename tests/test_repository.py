"""
SQL repository tests

Search field translation, patient restriction and result ordering
against an in-memory SQLite database.
"""
import pytest
from datetime import datetime
from unittest.mock import Mock

from sqlalchemy.exc import OperationalError

from encounter_export.fhir.search import (
    SearchComparator,
    SearchField,
    SearchFieldType,
    SearchValue,
    parse_datetime_value,
)
from encounter_export.repository import SqlEncounterRepository
from encounter_export.schemas import SourceRecord


ROWS = [
    {"euuid": "enc-b", "puuid": "pat-1", "date": "2023-06-01 10:00:00"},
    {"euuid": "enc-a", "puuid": "pat-2", "date": "2023-01-01 10:00:00"},
    {"euuid": "enc-c", "puuid": "pat-1", "date": "2024-01-01 10:00:00", "class_code": ""},
]


def date_field(comparator: SearchComparator, value: datetime) -> SearchField:
    return SearchField("date", SearchFieldType.DATETIME, (SearchValue(value, comparator),))


def parsed_date_field(raw: str) -> SearchField:
    return SearchField("date", SearchFieldType.DATETIME, (parse_datetime_value(raw),))


def token_field(name: str, *values: str) -> SearchField:
    return SearchField(name, SearchFieldType.TOKEN, tuple(SearchValue(v) for v in values))


@pytest.fixture
def repository(db, add_encounters):
    add_encounters(*ROWS)
    return SqlEncounterRepository(db, record_timezone="UTC")


class TestSqlEncounterRepository:
    """Search execution."""

    def test_returns_source_records_ordered_by_date(self, repository):
        result = repository.search({})

        assert result.is_valid()
        assert all(isinstance(r, SourceRecord) for r in result.data)
        assert [r.euuid for r in result.data] == ["enc-a", "enc-b", "enc-c"]

    def test_blank_fields_are_none(self, repository):
        result = repository.search({"_id": [token_field("euuid", "enc-c")]})

        assert result.data[0].class_code is None

    def test_token_or(self, repository):
        result = repository.search({"_id": [token_field("euuid", "enc-a", "enc-c")]})

        assert [r.euuid for r in result.data] == ["enc-a", "enc-c"]

    @pytest.mark.parametrize("comparator,expected", [
        (SearchComparator.LE, ["enc-a", "enc-b"]),
        (SearchComparator.LT, ["enc-a"]),
        (SearchComparator.GE, ["enc-b", "enc-c"]),
        (SearchComparator.GT, ["enc-c"]),
        (SearchComparator.EQ, ["enc-b"]),
        (SearchComparator.NE, ["enc-a", "enc-c"]),
    ])
    def test_date_comparators(self, repository, comparator, expected):
        field = date_field(comparator, datetime(2023, 6, 1, 10, 0))
        result = repository.search({"date": [field]})

        assert [r.euuid for r in result.data] == expected

    @pytest.mark.parametrize("raw,expected", [
        ("2023-06-01", ["enc-b"]),
        ("ne2023-06-01", ["enc-a", "enc-c"]),
        ("le2023-06-01", ["enc-a", "enc-b"]),
        ("lt2023-06-01", ["enc-a"]),
        ("ge2023-06-01", ["enc-b", "enc-c"]),
        ("gt2023-06-01", ["enc-c"]),
        ("sa2023-06-01", ["enc-c"]),
        ("eb2023-06-01", ["enc-a"]),
        ("le2023-12-31", ["enc-a", "enc-b"]),
        ("2023", ["enc-a", "enc-b"]),
        ("gt2023", ["enc-c"]),
        ("2023-06", ["enc-b"]),
        ("2023-06-01T10:00", ["enc-b"]),
        ("lt2023-06-01T10:00", ["enc-a"]),
    ])
    def test_date_only_values_cover_their_period(self, repository, raw, expected):
        result = repository.search({"date": [parsed_date_field(raw)]})

        assert [r.euuid for r in result.data] == expected

    def test_date_range_is_anded(self, repository):
        result = repository.search({"date": [
            date_field(SearchComparator.GE, datetime(2023, 3, 1)),
            date_field(SearchComparator.LE, datetime(2023, 12, 31)),
        ]})

        assert [r.euuid for r in result.data] == ["enc-b"]

    def test_or_combination(self, repository):
        result = repository.search({
            "_id": [token_field("euuid", "enc-a")],
            "patient": [token_field("puuid", "pat-1")],
        }, is_and=False)

        assert [r.euuid for r in result.data] == ["enc-a", "enc-b", "enc-c"]

    def test_patient_bind_restricts_results(self, repository):
        result = repository.search({}, puuid_bind="pat-1")

        assert [r.euuid for r in result.data] == ["enc-b", "enc-c"]

    def test_patient_bind_overrides_other_filters(self, repository):
        # enc-a belongs to pat-2 and must never be visible to pat-1
        result = repository.search(
            {"_id": [token_field("euuid", "enc-a")]}, is_and=False, puuid_bind="pat-1"
        )

        assert result.data == []

    def test_aware_search_value_shifted_to_record_timezone(self, db, add_encounters):
        add_encounters({"euuid": "enc-ny", "date": "2023-01-01 09:30:00"})
        repository = SqlEncounterRepository(db, record_timezone="America/New_York")
        # 14:30 UTC is 09:30 in New York
        aware = datetime.fromisoformat("2023-01-01T14:30:00+00:00")

        result = repository.search({"date": [date_field(SearchComparator.EQ, aware)]})

        assert [r.euuid for r in result.data] == ["enc-ny"]

    def test_unknown_field_is_validation_message(self, repository):
        result = repository.search({"status": [token_field("status", "finished")]})

        assert not result.is_valid()
        assert result.data == []

    def test_database_error_is_internal_error(self):
        db = Mock()
        db.query.return_value.filter.return_value = db.query.return_value
        db.query.return_value.order_by.return_value.all.side_effect = OperationalError(
            "SELECT", {}, Exception("database is locked")
        )
        repository = SqlEncounterRepository(db, record_timezone="UTC")

        result = repository.search({})

        assert result.has_internal_errors()
        assert result.data == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
