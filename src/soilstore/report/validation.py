"""
Payload validation for soil reports.

Both validators collect every violation and raise a single ValidationError,
so callers can show all field errors at once. Valid payloads are returned
cleaned: text trimmed, numbers as Decimal quantized to two places, unknown
keys (including id and timestamp) dropped.
"""

from decimal import Decimal, InvalidOperation

from soilstore.errors import ValidationError

TEXT_FIELDS = ("state", "district", "village")
NUTRIENT_FIELDS = ("nitrogen", "phosphorus", "potassium")
NUMERIC_FIELDS = ("ph",) + NUTRIENT_FIELDS
FIELDS = TEXT_FIELDS + NUMERIC_FIELDS

TEXT_MAX_LENGTH = 100
PH_MIN = Decimal("0")
PH_MAX = Decimal("14")
NUTRIENT_MAX = Decimal("999999.99")
CENTS = Decimal("0.01")


def to_decimal(value) -> Decimal | None:
    """Parse a number or numeric string into a finite Decimal, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    elif isinstance(value, str):
        raw = value.strip()
    else:
        return None
    try:
        number = Decimal(raw)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _clean_text(field: str, value, errors: dict) -> str | None:
    if not isinstance(value, str):
        errors[field] = f"{field} must be a string"
        return None
    value = value.strip()
    if not value:
        errors[field] = f"{field} is required"
    elif len(value) > TEXT_MAX_LENGTH:
        errors[field] = f"{field} cannot exceed {TEXT_MAX_LENGTH} characters"
    return value


def _clean_number(field: str, value, errors: dict, strict_positive: bool) -> Decimal | None:
    number = to_decimal(value)
    if number is None:
        errors[field] = f"{field} must be a number"
        return None
    try:
        rounded = number.quantize(CENTS)
    except InvalidOperation:
        errors[field] = f"{field} is out of range"
        return None
    if number != rounded:
        errors[field] = f"{field} must have at most 2 decimal places"
        return None

    if field == "ph":
        if not PH_MIN <= number <= PH_MAX:
            errors[field] = "ph must be between 0 and 14"
    elif strict_positive and number <= 0:
        errors[field] = f"{field} must be positive"
    elif number < 0:
        errors[field] = f"{field} cannot be negative"
    elif number > NUTRIENT_MAX:
        errors[field] = f"{field} cannot exceed {NUTRIENT_MAX}"
    return rounded


def _clean(data: dict, partial: bool) -> dict:
    if not isinstance(data, dict):
        raise ValidationError({"payload": "payload must be an object"})

    errors: dict[str, str] = {}
    cleaned = {}
    for field in FIELDS:
        if field not in data:
            if not partial:
                errors[field] = f"{field} is required"
            continue

        value = data[field]
        if value is None:
            errors[field] = f"{field} is required"
        elif field in TEXT_FIELDS:
            cleaned[field] = _clean_text(field, value, errors)
        else:
            # Creation uses the stricter rule: nutrients must be above zero
            cleaned[field] = _clean_number(field, value, errors, strict_positive=not partial)

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_create(data: dict) -> dict:
    """
    Validate a full soil report payload.

    Every field is required; nutrients must be strictly positive.

    Raises:
        ValidationError: Listing every missing or invalid field
    """
    return _clean(data, partial=False)


def validate_update(data: dict) -> dict:
    """
    Validate a partial soil report payload.

    Only the supplied fields are checked; nutrients may be zero.

    Raises:
        ValidationError: Listing every invalid field
    """
    return _clean(data, partial=True)
