"""
Import Service - spreadsheet preview and row-by-row import.

Framework-agnostic business logic used by the API, the Celery worker and the
CLI. Every row is mapped through the user's column mapping, validated, and
then created or updated inside its own savepoint, so a bad row is reported
and skipped without affecting the others.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.models.schema import Candidate, Group, Leader, Planillado, PlanilladoStatus
from services.excel_service import ROW_NUMBER_KEY, json_safe, normalize_header, read_spreadsheet, resolve_entity
from services.exceptions import BusinessRuleError, ServiceError
from services.leader_service import LeaderService
from services.notification_service import NotificationService
from services.validation_service import (
    clean_digits, clean_text, is_valid_cedula, is_valid_email, is_valid_mobile,
    parse_date, parse_non_negative_int
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 10000
DEFAULT_PREVIEW_ROWS = 5

SEVERITY_ERROR = 'error'
SEVERITY_WARNING = 'warning'

COMMON_HEADER_KEYWORDS = ('cedula', 'nombre', 'apellido', 'telefono', 'celular', 'email')

# Target fields per entity; `required` fields must be mapped and present.
IMPORT_FIELDS: Dict[str, Dict[str, List[str]]] = {
    'planillados': {
        'required': ['cedula', 'first_name', 'last_name'],
        'optional': [
            'mobile', 'address', 'neighborhood', 'id_issue_date', 'voting_department',
            'voting_municipality', 'voting_address', 'polling_station', 'table_number',
            'birth_date', 'gender', 'is_edil', 'notes', 'leader_cedula'
        ],
    },
    'leaders': {
        'required': ['cedula', 'first_name', 'last_name'],
        'optional': [
            'phone', 'email', 'address', 'neighborhood', 'municipality', 'birth_date',
            'gender', 'meta', 'group_name'
        ],
    },
    'candidates': {
        'required': ['name', 'email'],
        'optional': ['phone', 'position', 'party', 'meta', 'description'],
    },
    'groups': {
        'required': ['name', 'candidate_name'],
        'optional': ['zone', 'meta', 'description'],
    },
}

# (keywords that must all appear in the normalized header, target field).
# Order matters: the first matching rule wins.
MAPPING_RULES: Dict[str, List[Tuple[Tuple[str, ...], str]]] = {
    'planillados': [
        (('cedula', 'lider'), 'leader_cedula'),
        (('cedula',), 'cedula'),
        (('nombre',), 'first_name'),
        (('apellido',), 'last_name'),
        (('celular',), 'mobile'),
        (('telefono',), 'mobile'),
        (('fecha', 'expedicion'), 'id_issue_date'),
        (('fecha', 'nacimiento'), 'birth_date'),
        (('direccion', 'votacion'), 'voting_address'),
        (('direccion',), 'address'),
        (('barrio',), 'neighborhood'),
        (('departamento',), 'voting_department'),
        (('municipio',), 'voting_municipality'),
        (('zona',), 'polling_station'),
        (('puesto',), 'polling_station'),
        (('mesa',), 'table_number'),
        (('genero',), 'gender'),
        (('sexo',), 'gender'),
        (('edil',), 'is_edil'),
        (('nota',), 'notes'),
    ],
    'leaders': [
        (('cedula',), 'cedula'),
        (('nombre',), 'first_name'),
        (('apellido',), 'last_name'),
        (('celular',), 'phone'),
        (('telefono',), 'phone'),
        (('email',), 'email'),
        (('correo',), 'email'),
        (('direccion',), 'address'),
        (('barrio',), 'neighborhood'),
        (('municipio',), 'municipality'),
        (('fecha', 'nacimiento'), 'birth_date'),
        (('genero',), 'gender'),
        (('meta',), 'meta'),
        (('grupo',), 'group_name'),
    ],
    'candidates': [
        (('nombre',), 'name'),
        (('email',), 'email'),
        (('correo',), 'email'),
        (('telefono',), 'phone'),
        (('celular',), 'phone'),
        (('posicion',), 'position'),
        (('cargo',), 'position'),
        (('partido',), 'party'),
        (('meta',), 'meta'),
        (('descripcion',), 'description'),
    ],
    'groups': [
        (('candidato',), 'candidate_name'),
        (('nombre',), 'name'),
        (('zona',), 'zone'),
        (('meta',), 'meta'),
        (('descripcion',), 'description'),
    ],
}

TRUE_VALUES = {'si', 'sí', 'x', '1', 'true', 'verdadero', 'yes'}
GENDER_VALUES = {
    'm': 'M', 'masculino': 'M', 'hombre': 'M',
    'f': 'F', 'femenino': 'F', 'mujer': 'F',
}


def suggest_mapping(headers: List[str], entity_type: str) -> Dict[str, str]:
    """
    Guess the target field of each header.

    Returns:
        {header: field} for recognized headers; each field is used once.
    """
    rules = MAPPING_RULES[resolve_entity(entity_type)]
    mapping: Dict[str, str] = {}
    used = set()
    for header in headers:
        normalized = normalize_header(header)
        if not normalized:
            continue
        for keywords, field in rules:
            if all(keyword in normalized for keyword in keywords):
                if field not in used:
                    mapping[header] = field
                    used.add(field)
                break
    return mapping


def validate_structure(headers: List[str], entity_type: Optional[str] = None) -> Tuple[List[str], List[str]]:
    """
    Check the header row.

    Returns:
        (errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []

    seen = {}
    for index, header in enumerate(headers, start=1):
        if not header:
            warnings.append(f"Column {index} has no header and will be ignored")
            continue
        key = normalize_header(header)
        if key in seen:
            errors.append(f"Duplicate column '{header}' (columns {seen[key]} and {index})")
        else:
            seen[key] = index

    normalized = [normalize_header(h) for h in headers if h]
    if not any(keyword in h for h in normalized for keyword in COMMON_HEADER_KEYWORDS):
        warnings.append(
            'No common headers found (cedula, nombre, apellido, telefono, email); '
            'check that the first row holds the column names'
        )

    if entity_type:
        entity = resolve_entity(entity_type)
        mapped = set(suggest_mapping(headers, entity).values())
        missing = [f for f in IMPORT_FIELDS[entity]['required'] if f not in mapped]
        if missing:
            warnings.append(f"Could not find columns for required fields: {', '.join(missing)}")
        if entity == 'planillados' and 'leader_cedula' in mapped:
            warnings.append("Leader cedula column detected: planillados will be linked to their leaders")

    return errors, warnings


def sheet_row_number(row: Dict[str, Any], index: int) -> int:
    """Row number recorded when the file was read, else the position after the header."""
    number = row.get(ROW_NUMBER_KEY)
    if isinstance(number, int) and not isinstance(number, bool):
        return number
    return index + 2


def _issue(row: int, field: str, value: Any, error: str, severity: str = SEVERITY_ERROR) -> Dict[str, Any]:
    return {
        'row': row,
        'field': field,
        'value': None if value is None else str(json_safe(value)),
        'error': error,
        'severity': severity,
    }


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return normalize_header(value) in TRUE_VALUES


def _parse_gender(value: Any) -> Optional[str]:
    text = normalize_header(value)
    if not text:
        return None
    return GENDER_VALUES.get(text, 'Other')


class ImportService:
    """
    Spreadsheet import service with progress callback support.

    Args:
        db_session: SQLAlchemy session
        progress_callback: Optional callable(stage, percent, message)
        notifier: Optional NotificationService for leader notifications
    """

    def __init__(self, db_session: Session,
                 progress_callback: Optional[Callable[[str, float, str], None]] = None,
                 notifier: Optional[NotificationService] = None,
                 max_rows: int = DEFAULT_MAX_ROWS,
                 preview_rows: int = DEFAULT_PREVIEW_ROWS):
        self.session = db_session
        self.progress_callback = progress_callback
        self.notifier = notifier
        self.max_rows = max_rows
        self.preview_rows = preview_rows
        self._leader_cache: Dict[str, Optional[Leader]] = {}

    def _emit_progress(self, stage: str, percent: float, message: str):
        if self.progress_callback:
            try:
                self.progress_callback(stage, percent, message)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    # Preview

    def preview(self, content: bytes, filename: str, entity_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Read a file and describe it without saving anything.

        Returns:
            {file_name, headers, total_rows, sample_rows, data, errors,
            warnings, suggested_mapping}
        """
        try:
            headers, rows = read_spreadsheet(content, filename)
        except Exception as e:
            logger.error(f"Could not read {filename}: {e}")
            raise BusinessRuleError(f"Could not read file '{filename}': {e}")

        errors, warnings = validate_structure(headers, entity_type)
        if not headers or not rows:
            errors.append('The file has no data rows')
        if len(rows) > self.max_rows:
            warnings.append(
                f"The file has {len(rows)} rows; imports are limited to {self.max_rows} rows per file"
            )

        data = [{key: json_safe(value) for key, value in row.items()} for row in rows]
        return {
            'file_name': filename,
            'headers': headers,
            'total_rows': len(rows),
            'sample_rows': data[:self.preview_rows],
            'data': data,
            'errors': errors,
            'warnings': warnings,
            'suggested_mapping': suggest_mapping(headers, entity_type) if entity_type else {},
        }

    # Import

    def import_file(self, file_path: str, entity_type: str,
                    field_mappings: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Read a spreadsheet from disk and import it."""
        self._emit_progress('reading', 0, f"Reading {Path(file_path).name}")
        with open(file_path, 'rb') as f:
            content = f.read()
        headers, rows = read_spreadsheet(content, file_path)
        if not field_mappings:
            field_mappings = suggest_mapping(headers, entity_type)
            logger.info(f"Using suggested mapping for {file_path}: {field_mappings}")
        return self.import_rows(entity_type, rows, field_mappings)

    def _check_mapping(self, entity: str, field_mappings: Dict[str, str]) -> Dict[str, str]:
        allowed = set(IMPORT_FIELDS[entity]['required']) | set(IMPORT_FIELDS[entity]['optional'])
        mapping = {column: field for column, field in field_mappings.items() if field}
        unknown = sorted({field for field in mapping.values() if field not in allowed})
        if unknown:
            raise BusinessRuleError(
                f"Unknown fields for {entity}: {', '.join(unknown)}",
                detail={'allowed': sorted(allowed)}
            )
        missing = [f for f in IMPORT_FIELDS[entity]['required'] if f not in mapping.values()]
        if missing:
            raise BusinessRuleError(f"Required fields are not mapped: {', '.join(missing)}")
        return mapping

    @staticmethod
    def map_row(row: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
        record: Dict[str, Any] = {}
        for column, field in mapping.items():
            value = row.get(column)
            if isinstance(value, str):
                value = value.strip() or None
            if value is not None and record.get(field) is None:
                record[field] = value
        return record

    def import_rows(self, entity_type: str, rows: List[Dict[str, Any]],
                    field_mappings: Dict[str, str]) -> Dict[str, Any]:
        """
        Validate and save rows.

        Args:
            entity_type: planillados (or voters), leaders, candidates, groups
            rows: Raw rows {column: value} in file order (header excluded),
                numbered by ROW_NUMBER_KEY when read from a file
            field_mappings: {column: target field}

        Returns:
            {success, total_rows, success_count, created_count, updated_count,
            error_count, errors, warnings, execution_time_ms}
        """
        started = time.monotonic()
        entity = resolve_entity(entity_type)

        if not rows:
            raise BusinessRuleError('There is no data to import')
        if len(rows) > self.max_rows:
            raise BusinessRuleError(f"Imports are limited to {self.max_rows} rows, got {len(rows)}")
        mapping = self._check_mapping(entity, field_mappings or {})

        validate, save = {
            'planillados': (self._validate_planillado, self._save_planillado),
            'leaders': (self._validate_leader, self._save_leader),
            'candidates': (self._validate_candidate, self._save_candidate),
            'groups': (self._validate_group, self._save_group),
        }[entity]

        logger.info(f"Importing {len(rows)} {entity} rows")
        self._emit_progress('validating', 5, f"Importing {len(rows)} rows")

        errors: List[Dict[str, Any]] = []
        warnings: List[Dict[str, Any]] = []
        created = updated = failed = 0
        new_leaders: List[Leader] = []
        step = max(len(rows) // 20, 1)

        for index, raw in enumerate(rows):
            row_number = sheet_row_number(raw, index)
            record = self.map_row(raw, mapping)
            values, issues = validate(row_number, record)

            warnings.extend(i for i in issues if i['severity'] == SEVERITY_WARNING)
            row_errors = [i for i in issues if i['severity'] == SEVERITY_ERROR]
            if row_errors:
                errors.extend(row_errors)
                failed += 1
                continue

            try:
                with self.session.begin_nested():
                    instance, was_created = save(values)
                    self.session.flush()
                if was_created:
                    created += 1
                    if isinstance(instance, Leader):
                        new_leaders.append(instance)
                else:
                    updated += 1
            except (SQLAlchemyError, ServiceError) as e:
                logger.warning(f"Row {row_number} could not be saved: {e}")
                errors.append(_issue(row_number, 'general', None, f"Could not save row: {e}"))
                failed += 1

            if (index + 1) % step == 0:
                percent = 5 + (index + 1) / len(rows) * 90
                self._emit_progress('saving', percent, f"Processed {index + 1}/{len(rows)} rows")

        self.session.commit()

        if new_leaders:
            leader_service = LeaderService(self.session, self.notifier)
            for leader in new_leaders:
                leader_service.notify_pending_planillados(leader)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        self._emit_progress('complete', 100, f"Imported {created + updated} of {len(rows)} rows")
        logger.info(
            f"Import of {entity} finished: {created} created, {updated} updated, "
            f"{failed} failed in {elapsed_ms} ms"
        )

        return {
            'success': failed == 0,
            'entity_type': entity,
            'total_rows': len(rows),
            'success_count': created + updated,
            'created_count': created,
            'updated_count': updated,
            'error_count': failed,
            'errors': errors,
            'warnings': warnings,
            'execution_time_ms': elapsed_ms,
        }

    # Field checks shared by the entity validators

    def _cedula(self, row: int, record: Dict[str, Any], field: str, issues: List) -> Optional[str]:
        raw = record.get(field)
        cedula = clean_digits(raw)
        if not cedula:
            issues.append(_issue(row, field, raw, 'Cedula is required'))
            return None
        if not is_valid_cedula(cedula):
            issues.append(_issue(row, field, raw, 'Cedula must contain 8 to 11 digits'))
            return None
        return cedula

    @staticmethod
    def _name(row: int, record: Dict[str, Any], field: str, max_length: int, issues: List,
              min_length: int = 2) -> Optional[str]:
        value = clean_text(record.get(field))
        if not value:
            issues.append(_issue(row, field, value, f"{field} is required"))
            return None
        if not min_length <= len(value) <= max_length:
            issues.append(_issue(
                row, field, value, f"{field} must have between {min_length} and {max_length} characters"
            ))
            return None
        return value

    @staticmethod
    def _mobile(row: int, record: Dict[str, Any], field: str, issues: List) -> Optional[str]:
        raw = record.get(field)
        if raw is None:
            return None
        mobile = clean_digits(raw)
        if not is_valid_mobile(mobile):
            issues.append(_issue(
                row, field, raw, 'Mobile must have 10 digits and start with 3; value ignored',
                SEVERITY_WARNING
            ))
            return None
        return mobile

    @staticmethod
    def _date(row: int, record: Dict[str, Any], field: str, issues: List):
        raw = record.get(field)
        try:
            return parse_date(raw)
        except ValueError:
            issues.append(_issue(row, field, raw, 'Invalid date (use DD/MM/YYYY); value ignored', SEVERITY_WARNING))
            return None

    @staticmethod
    def _meta(row: int, record: Dict[str, Any], issues: List) -> Optional[int]:
        raw = record.get('meta')
        try:
            return parse_non_negative_int(raw)
        except ValueError:
            issues.append(_issue(row, 'meta', raw, 'Meta must be a whole number greater than or equal to 0'))
            return None

    @staticmethod
    def _text(record: Dict[str, Any], field: str, max_length: Optional[int] = None) -> Optional[str]:
        value = clean_text(record.get(field))
        if value and max_length:
            value = value[:max_length]
        return value

    def _leader_by_cedula(self, cedula: str) -> Optional[Leader]:
        if cedula not in self._leader_cache:
            self._leader_cache[cedula] = self.session.query(Leader).filter(Leader.cedula == cedula).first()
        return self._leader_cache[cedula]

    # Planillados

    def _validate_planillado(self, row: int, record: Dict[str, Any]):
        issues: List[Dict[str, Any]] = []
        values = {
            'cedula': self._cedula(row, record, 'cedula', issues),
            'first_name': self._name(row, record, 'first_name', 150, issues),
            'last_name': self._name(row, record, 'last_name', 150, issues),
            'mobile': self._mobile(row, record, 'mobile', issues),
            'address': self._text(record, 'address'),
            'neighborhood': self._text(record, 'neighborhood', 100),
            'id_issue_date': self._date(row, record, 'id_issue_date', issues),
            'voting_department': self._text(record, 'voting_department', 100),
            'voting_municipality': self._text(record, 'voting_municipality', 100),
            'voting_address': self._text(record, 'voting_address'),
            'polling_station': self._text(record, 'polling_station', 50),
            'table_number': self._text(record, 'table_number', 20),
            'birth_date': self._date(row, record, 'birth_date', issues),
            'gender': _parse_gender(record.get('gender')),
            'notes': self._text(record, 'notes', 500),
        }
        if record.get('is_edil') is not None:
            values['is_edil'] = _parse_bool(record['is_edil'])

        leader_cedula = clean_digits(record.get('leader_cedula'))
        if leader_cedula:
            leader = self._leader_by_cedula(leader_cedula)
            if leader:
                values['leader_id'] = leader.id
                values['group_id'] = leader.group_id
                values['pending_leader_cedula'] = None
            else:
                values['pending_leader_cedula'] = leader_cedula
                issues.append(_issue(
                    row, 'leader_cedula', leader_cedula,
                    'Leader not found; the planillado stays pending until the leader is registered',
                    SEVERITY_WARNING
                ))
        return values, issues

    def _save_planillado(self, values: Dict[str, Any]):
        existing = self.session.query(Planillado).filter(Planillado.cedula == values['cedula']).first()
        if existing:
            for field, value in values.items():
                if value is not None or (field == 'pending_leader_cedula' and 'leader_id' in values):
                    setattr(existing, field, value)
            existing.is_updated = True
            return existing, False

        planillado = Planillado(
            **{k: v for k, v in values.items() if v is not None},
            status=PlanilladoStatus.PENDING.value,
            is_updated=True
        )
        self.session.add(planillado)
        return planillado, True

    # Leaders

    def _validate_leader(self, row: int, record: Dict[str, Any]):
        issues: List[Dict[str, Any]] = []
        values = {
            'cedula': self._cedula(row, record, 'cedula', issues),
            'first_name': self._name(row, record, 'first_name', 100, issues),
            'last_name': self._name(row, record, 'last_name', 100, issues),
            'phone': self._mobile(row, record, 'phone', issues),
            'address': self._text(record, 'address'),
            'neighborhood': self._text(record, 'neighborhood', 100),
            'municipality': self._text(record, 'municipality', 100),
            'birth_date': self._date(row, record, 'birth_date', issues),
            'gender': _parse_gender(record.get('gender')),
            'meta': self._meta(row, record, issues),
        }

        email = clean_text(record.get('email'))
        if email and not is_valid_email(email):
            issues.append(_issue(row, 'email', email, 'Invalid email; value ignored', SEVERITY_WARNING))
            email = None
        values['email'] = email

        group_name = clean_text(record.get('group_name'))
        if group_name:
            group = self.session.query(Group)\
                .filter(func.lower(Group.name) == group_name.lower())\
                .order_by(Group.id)\
                .first()
            if group:
                values['group_id'] = group.id
            else:
                issues.append(_issue(row, 'group_name', group_name, 'Group not found', SEVERITY_WARNING))
        return values, issues

    def _save_leader(self, values: Dict[str, Any]):
        existing = self.session.query(Leader).filter(Leader.cedula == values['cedula']).first()
        if existing:
            for field, value in values.items():
                if value is not None:
                    setattr(existing, field, value)
            return existing, False

        leader = Leader(**{k: v for k, v in values.items() if v is not None})
        self.session.add(leader)
        self._leader_cache[leader.cedula] = leader
        return leader, True

    # Candidates

    def _validate_candidate(self, row: int, record: Dict[str, Any]):
        issues: List[Dict[str, Any]] = []
        values = {
            'name': self._name(row, record, 'name', 255, issues),
            'phone': self._text(record, 'phone', 20),
            'position': self._text(record, 'position', 50),
            'party': self._text(record, 'party', 100),
            'meta': self._meta(row, record, issues),
            'description': self._text(record, 'description'),
        }
        email = clean_text(record.get('email'))
        if not email:
            issues.append(_issue(row, 'email', email, 'email is required'))
        elif not is_valid_email(email):
            issues.append(_issue(row, 'email', email, 'Invalid email'))
        values['email'] = email
        return values, issues

    def _save_candidate(self, values: Dict[str, Any]):
        existing = self.session.query(Candidate)\
            .filter(func.lower(Candidate.email) == values['email'].lower())\
            .first()
        same_name = self.session.query(Candidate)\
            .filter(func.lower(Candidate.name) == values['name'].lower())\
            .first()
        if same_name and same_name is not existing:
            raise BusinessRuleError(f"Candidate name '{values['name']}' is already used by another candidate")

        if existing:
            for field, value in values.items():
                if value is not None:
                    setattr(existing, field, value)
            return existing, False

        candidate = Candidate(**{k: v for k, v in values.items() if v is not None})
        self.session.add(candidate)
        return candidate, True

    # Groups

    def _validate_group(self, row: int, record: Dict[str, Any]):
        issues: List[Dict[str, Any]] = []
        values = {
            'name': self._name(row, record, 'name', 255, issues),
            'zone': self._text(record, 'zone', 100),
            'meta': self._meta(row, record, issues),
            'description': self._text(record, 'description'),
        }
        candidate_name = clean_text(record.get('candidate_name'))
        if not candidate_name:
            issues.append(_issue(row, 'candidate_name', None, 'candidate is required'))
        else:
            candidate = self.session.query(Candidate)\
                .filter(func.lower(Candidate.name) == candidate_name.lower())\
                .first()
            if candidate:
                values['candidate_id'] = candidate.id
            else:
                issues.append(_issue(row, 'candidate_name', candidate_name, 'Candidate not found'))
        return values, issues

    def _save_group(self, values: Dict[str, Any]):
        existing = self.session.query(Group)\
            .filter(Group.candidate_id == values['candidate_id'])\
            .filter(func.lower(Group.name) == values['name'].lower())\
            .first()
        if existing:
            for field, value in values.items():
                if value is not None:
                    setattr(existing, field, value)
            return existing, False

        group = Group(**{k: v for k, v in values.items() if v is not None})
        self.session.add(group)
        return group, True
