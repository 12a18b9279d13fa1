"""
FHIR Search Parameters

Declares which FHIR search parameters a resource service supports,
how each binds to internal record fields, and how raw parameter
values are parsed into typed search fields for the persistence layer.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class SearchParameterException(ValueError):
    """Raised when a search parameter value cannot be parsed."""


class SearchFieldType(str, Enum):
    """FHIR search parameter value types."""
    TOKEN = "token"
    DATETIME = "datetime"
    REFERENCE = "reference"
    STRING = "string"


class SearchComparator(str, Enum):
    """Comparator prefixes supported on datetime parameters."""
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GE = "ge"
    LE = "le"


# "starts after" / "ends before" compare against the same bounds as gt / lt
_PREFIX_ALIASES = {"sa": SearchComparator.GT, "eb": SearchComparator.LT}

_DATETIME_PATTERN = re.compile(r"^(eq|ne|gt|lt|ge|le|sa|eb)?(\d{4}.*)$")
_TIME_PATTERN = re.compile(r"[T ]\d{2}(?::(\d{2}))?(?::(\d{2}))?(?:\.(\d+))?")


@dataclass(frozen=True)
class ServiceField:
    """An internal record field a search parameter binds to."""
    TYPE_STRING = "string"
    TYPE_UUID = "uuid"

    name: str
    field_type: str = TYPE_STRING


@dataclass(frozen=True)
class SearchValue:
    """
    A single parsed value with its comparator.

    Datetime values are the range [value, upper) implied by the precision
    they were written at. A missing upper bound means a point value.
    """
    value: Any
    comparator: SearchComparator = SearchComparator.EQ
    upper: Optional[datetime] = None


@dataclass(frozen=True)
class SearchField:
    """
    Typed filter on one internal field.

    Values inside one SearchField are ORed; separate SearchFields are ANDed.
    """
    name: str
    field_type: SearchFieldType
    values: Tuple[SearchValue, ...]


@dataclass(frozen=True)
class SearchParameterDefinition:
    """A supported FHIR search parameter and the internal fields it binds to."""
    name: str
    field_type: SearchFieldType
    fields: Tuple[ServiceField, ...]

    def __post_init__(self):
        # Accept plain field names for convenience
        fields = tuple(
            f if isinstance(f, ServiceField) else ServiceField(f)
            for f in self.fields
        )
        if not fields:
            raise ValueError(f"Search parameter '{self.name}' must bind at least one field")
        object.__setattr__(self, "fields", fields)

    def parse(self, raw: Union[str, List[str]]) -> List[SearchField]:
        """
        Parse a raw parameter value into search fields.

        A list of raw values is ANDed; comma-separated values inside one
        raw value are ORed.

        Raises:
            SearchParameterException: If a value cannot be parsed
        """
        raw_values = raw if isinstance(raw, (list, tuple)) else [raw]
        search_fields = []
        for raw_value in raw_values:
            if raw_value is None or not str(raw_value).strip():
                raise SearchParameterException(f"Empty value for search parameter '{self.name}'")
            values = tuple(
                self._parse_value(part.strip())
                for part in str(raw_value).split(",")
                if part.strip()
            )
            for service_field in self.fields:
                search_fields.append(SearchField(
                    name=service_field.name,
                    field_type=self.field_type,
                    values=values,
                ))
        return search_fields

    def _parse_value(self, value: str) -> SearchValue:
        if self.field_type == SearchFieldType.TOKEN:
            # system|code - only the code part is matched
            return SearchValue(value.split("|")[-1])
        if self.field_type == SearchFieldType.REFERENCE:
            return SearchValue(parse_reference_id(value))
        if self.field_type == SearchFieldType.DATETIME:
            return parse_datetime_value(value, self.name)
        return SearchValue(value)


def parse_datetime_value(value: str, parameter: str = "date") -> SearchValue:
    """
    Parse a prefixed FHIR datetime value such as ``le2023-12-31T00:00:00.000+00:00``.

    The value names a period at the precision it was written at:
    ``2023`` is the whole year, ``2023-06-01`` the whole day and
    ``2023-06-01T10:00`` the whole minute. The returned SearchValue holds
    the period's inclusive start and exclusive end.
    """
    match = _DATETIME_PATTERN.match(value)
    if not match:
        raise SearchParameterException(f"Invalid datetime value for '{parameter}': {value}")
    prefix, date_text = match.groups()
    comparator = _PREFIX_ALIASES.get(prefix) or SearchComparator(prefix or "eq")

    iso_text = date_text
    if re.fullmatch(r"\d{4}", date_text):
        iso_text += "-01-01"
    elif re.fullmatch(r"\d{4}-\d{2}", date_text):
        iso_text += "-01"

    try:
        start = datetime.fromisoformat(iso_text.replace("Z", "+00:00"))
        end = _period_end(start, date_text)
    except ValueError as e:
        raise SearchParameterException(
            f"Invalid datetime value for '{parameter}': {value}"
        ) from e
    return SearchValue(start, comparator, upper=end)


def parse_reference_id(value: str) -> str:
    """
    Resource id of a reference such as ``123``, ``Patient/123``,
    ``Patient/123/_history/2`` or ``http://host/fhir/Patient/123``.
    """
    segments = [segment for segment in value.split("/") if segment]
    if "_history" in segments:
        segments = segments[:segments.index("_history")]
    return segments[-1] if segments else value


def _period_end(start: datetime, date_text: str) -> datetime:
    """Exclusive end of the period ``date_text`` names."""
    if re.fullmatch(r"\d{4}", date_text):
        return start.replace(year=start.year + 1)
    if re.fullmatch(r"\d{4}-\d{2}", date_text):
        if start.month == 12:
            return start.replace(year=start.year + 1, month=1)
        return start.replace(month=start.month + 1)

    time = _TIME_PATTERN.search(date_text)
    if time is None:
        return start + timedelta(days=1)
    minutes, seconds, fraction = time.groups()
    if fraction:
        return start + timedelta(microseconds=10 ** max(0, 6 - len(fraction)))
    if seconds:
        return start + timedelta(seconds=1)
    if minutes:
        return start + timedelta(minutes=1)
    return start + timedelta(hours=1)


class PatientContextSearch:
    """
    Patient compartment search capability.

    Resource services compose this to expose the ``patient`` search
    parameter bound to the record's patient uuid field.
    """

    def __init__(self, field_name: str = "puuid"):
        self.field_name = field_name

    def get_patient_context_search_field(self) -> SearchParameterDefinition:
        return SearchParameterDefinition(
            "patient",
            SearchFieldType.REFERENCE,
            (ServiceField(self.field_name, ServiceField.TYPE_UUID),),
        )


@dataclass
class ProcessingResult:
    """
    Outcome of a search: ordered data plus any accumulated issues.

    Attributes:
        data: Records (or mapped resources) in result order
        validation_messages: Problems with the request (e.g. bad parameters)
        internal_errors: Failures inside the persistence layer
    """
    data: List[Any] = field(default_factory=list)
    validation_messages: Dict[str, str] = field(default_factory=dict)
    internal_errors: List[str] = field(default_factory=list)

    def is_valid(self) -> bool:
        return not self.validation_messages

    def has_internal_errors(self) -> bool:
        return bool(self.internal_errors)

    def has_errors(self) -> bool:
        return not self.is_valid() or self.has_internal_errors()

    def add_data(self, item: Any) -> None:
        self.data.append(item)


def build_search_fields(
    definitions: Dict[str, SearchParameterDefinition],
    params: Dict[str, Any],
) -> Tuple[Dict[str, List[SearchField]], Dict[str, str]]:
    """
    Translate FHIR search parameters into internal search fields.

    Returns:
        (search fields keyed by parameter name, validation messages)
    """
    fields: Dict[str, List[SearchField]] = {}
    messages: Dict[str, str] = {}
    for name, raw in (params or {}).items():
        definition: Optional[SearchParameterDefinition] = definitions.get(name)
        if definition is None:
            messages[name] = f"Unsupported search parameter '{name}'"
            continue
        try:
            fields[name] = definition.parse(raw)
        except SearchParameterException as e:
            messages[name] = str(e)
    return fields, messages
