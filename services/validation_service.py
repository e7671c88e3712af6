"""
Validation Service - field rules shared by forms and spreadsheet imports.

Identity numbers (cedula), mobile numbers and emails follow the same rules
everywhere; this module is the single place they are defined.
"""

import logging
import re
from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.models.schema import Planillado, calculate_age

logger = logging.getLogger(__name__)

CEDULA_REGEX = r'^\d{8,11}$'
MOBILE_REGEX = r'^3\d{9}$'
EMAIL_REGEX = r'^[^\s@]+@[^\s@]+\.[^\s@]+$'

CEDULA_PATTERN = re.compile(CEDULA_REGEX)
MOBILE_PATTERN = re.compile(MOBILE_REGEX)
EMAIL_PATTERN = re.compile(EMAIL_REGEX)

DATE_FORMATS = ('%d/%m/%Y', '%Y-%m-%d', '%d-%m-%Y', '%d/%m/%y')

MIN_VOTING_AGE = 18
MAX_PLAUSIBLE_AGE = 100


def is_valid_cedula(value: Optional[str]) -> bool:
    return bool(value) and bool(CEDULA_PATTERN.match(value))


def is_valid_mobile(value: Optional[str]) -> bool:
    return bool(value) and bool(MOBILE_PATTERN.match(value))


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(EMAIL_PATTERN.match(value))


def clean_digits(value: Any) -> Optional[str]:
    """
    Normalize an identity or phone cell to a digit string.

    Spreadsheets hand these over as ints, floats (12345678.0) or text with
    dots and spaces ("12.345.678"). Anything else is returned stripped so the
    caller can report it.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    text = str(value).strip()
    if re.match(r'^\d+\.0+$', text):
        text = text.split('.')[0]
    compact = re.sub(r'[\s.\-]', '', text)
    return compact if compact.isdigit() else text or None


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a date cell.

    Raises:
        ValueError: If the value is present but not a recognizable date
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date '{text}'")


def parse_non_negative_int(value: Any) -> Optional[int]:
    """
    Parse a goal (meta) cell.

    Raises:
        ValueError: If the value is not a whole number >= 0
    """
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid number '{value}'")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Invalid number '{value}'")
        value = int(value)
    number = int(str(value).strip())
    if number < 0:
        raise ValueError(f"Number must be >= 0, got {number}")
    return number


class ValidationService:
    """Record-level checks that need the database."""

    def __init__(self, db_session: Session):
        self.session = db_session

    def validate_planillado(self, data: Dict[str, Any], exclude_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Check a planillado before saving it.

        Args:
            data: Field values (cedula, mobile, birth_date, neighborhood, ...)
            exclude_id: Record being edited, ignored in the duplicate check

        Returns:
            {is_valid, errors, warnings, suggestions}
        """
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: Dict[str, Any] = {}

        cedula = data.get('cedula')
        if cedula:
            if not is_valid_cedula(cedula):
                errors.append('Cedula must contain 8 to 11 digits')
            else:
                query = self.session.query(Planillado).filter(Planillado.cedula == cedula)
                if exclude_id is not None:
                    query = query.filter(Planillado.id != exclude_id)
                if query.first():
                    errors.append(f"A planillado with cedula {cedula} already exists")

        birth_date = data.get('birth_date')
        if birth_date:
            if isinstance(birth_date, str):
                try:
                    birth_date = parse_date(birth_date)
                except ValueError:
                    errors.append('Invalid birth date')
                    birth_date = None
            age = calculate_age(birth_date)
            if age is not None:
                if age < MIN_VOTING_AGE:
                    errors.append(f"Must be at least {MIN_VOTING_AGE} years old")
                elif age > MAX_PLAUSIBLE_AGE:
                    warnings.append('Age is over 100 years, please verify the birth date')

        mobile = data.get('mobile')
        if mobile and not is_valid_mobile(mobile):
            errors.append('Mobile must have 10 digits and start with 3')

        if data.get('neighborhood') and not data.get('voting_municipality'):
            suggested = self.most_common_municipality(data['neighborhood'])
            if suggested:
                suggestions['voting_municipality'] = suggested

        return {
            'is_valid': not errors,
            'errors': errors,
            'warnings': warnings,
            'suggestions': suggestions,
        }

    def most_common_municipality(self, neighborhood: str) -> Optional[str]:
        """Most frequent voting municipality among planillados of a neighborhood."""
        rows = self.session.query(Planillado.voting_municipality, func.count(Planillado.id))\
            .filter(func.lower(Planillado.neighborhood) == neighborhood.strip().lower())\
            .filter(Planillado.voting_municipality.isnot(None))\
            .group_by(Planillado.voting_municipality)\
            .all()
        if not rows:
            return None
        counter = Counter({municipality: count for municipality, count in rows})
        return counter.most_common(1)[0][0]
