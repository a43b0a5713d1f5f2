"""Helpers for parsing Supabase rows into domain values."""

from datetime import UTC, datetime

from nutrition_matcher.domain.errors import MalformedCandidateData

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def parse_tags(row: dict[str, object], column: str) -> frozenset[str]:
    """Parse a text[] column; NULL is empty, anything unreadable raises."""
    raw = row.get(column)
    if raw is None:
        return frozenset()
    if not isinstance(raw, list) or not all(isinstance(tag, str) for tag in raw):
        raise MalformedCandidateData(column, raw)
    return frozenset(tag.strip().lower() for tag in raw if tag.strip())


def parse_ingredient_names(row: dict[str, object], column: str) -> tuple[str, ...]:
    """Parse ingredients stored as text[] or as a JSON array of objects."""
    raw = row.get(column)
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise MalformedCandidateData(column, raw)
    names: list[str] = []
    for entry in raw:
        if isinstance(entry, str):
            names.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("name"), str):
            names.append(entry["name"])
        else:
            raise MalformedCandidateData(column, entry)
    return tuple(names)


def parse_float(value: object) -> float | None:
    """Parse numeric columns that PostgREST may return as strings."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def parse_timestamp(value: object) -> datetime:
    """Parse an ISO timestamp, assuming UTC when no offset is present."""
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return EPOCH
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
    return EPOCH


def parse_int(value: object) -> int:
    """Parse a counter column, defaulting to zero."""
    parsed = parse_float(value)
    return int(parsed) if parsed is not None else 0


def collect_tags(
    row: dict[str, object], column: str, field_name: str, malformed: list[str]
) -> frozenset[str]:
    """Parse a safety-relevant tag column, recording failures in malformed."""
    try:
        return parse_tags(row, column)
    except MalformedCandidateData:
        malformed.append(field_name)
        return frozenset()


def collect_ingredients(
    row: dict[str, object], column: str, malformed: list[str]
) -> tuple[str, ...]:
    """Parse ingredient names, recording failures in malformed."""
    try:
        return parse_ingredient_names(row, column)
    except MalformedCandidateData:
        malformed.append("ingredients")
        return ()
