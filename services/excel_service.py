"""
Spreadsheet Service - openpyxl workbooks for export, templates and import.

Framework-agnostic: functions return raw bytes or plain Python structures,
the API layer wraps them in HTTP responses.
"""

import csv
import io
import logging
import unicodedata
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

# Sheet row number (header is row 1) stored with every row read from a file
ROW_NUMBER_KEY = '__row__'

HEADER_FONT = Font(bold=True, color='FFFFFF')
HEADER_FILL = PatternFill(start_color='1F4E78', end_color='1F4E78', fill_type='solid')

# Preferred widths per (normalized) header; other columns fit their header
COLUMN_WIDTHS = {
    'cedula': 12,
    'nombres': 20,
    'apellidos': 20,
    'celular': 15,
    'direccion': 25,
    'barrio donde vive': 18,
    'barrio': 18,
    'fecha de expedicion': 18,
    'municipio de votacion': 20,
    'municipio': 18,
    'zona y puesto': 18,
    'mesa': 8,
    'cedula lider': 14,
    'email': 25,
    'meta de votantes': 16,
    'grupo': 20,
    'nombre': 25,
    'descripcion': 35,
    'candidato': 25,
}


def normalize_header(value: Any) -> str:
    """Lowercase, accent-free, single-spaced version of a header cell."""
    text = str(value or '').strip().lower()
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    return ' '.join(text.replace('_', ' ').split())


def column_width(header: str) -> int:
    return COLUMN_WIDTHS.get(normalize_header(header), max(len(str(header)) + 2, 10))


def _format_cell(value: Any) -> Any:
    if isinstance(value, bool):
        return 'Sí' if value else 'No'
    return value


def _write_sheet(ws, headers: Sequence[str], rows: Sequence[Sequence[Any]]):
    ws.append(list(headers))
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center', vertical='center')

    for row in rows:
        ws.append([_format_cell(value) for value in row])

    for index, header in enumerate(headers, start=1):
        ws.column_dimensions[get_column_letter(index)].width = column_width(header)
    ws.freeze_panes = 'A2'


def build_workbook(sheet_name: str, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> bytes:
    """
    Build a single-sheet workbook.

    Args:
        sheet_name: Title of the worksheet
        headers: Column headings (first row, bold)
        rows: Data rows in header order

    Returns:
        The .xlsx file content
    """
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_name[:31]
    _write_sheet(ws, headers, rows)

    buffer = io.BytesIO()
    wb.save(buffer)
    logger.debug(f"Built workbook '{sheet_name}' with {len(rows)} rows")
    return buffer.getvalue()


def export_filename(prefix: str, today: Optional[date] = None) -> str:
    return f"{prefix}_{(today or date.today()).isoformat()}.xlsx"


# Templates

TEMPLATE_INSTRUCTIONS_COMMON = [
    '1. No modifique los encabezados de la primera fila.',
    '2. Elimine las filas de ejemplo antes de importar.',
    '3. La cédula debe contener solo números (8 a 11 dígitos).',
    '4. El celular debe tener 10 dígitos y comenzar por 3.',
    '5. Las fechas deben tener el formato DD/MM/AAAA.',
    '6. Máximo 10,000 registros por archivo.',
]

TEMPLATES: Dict[str, Dict[str, Any]] = {
    'planillados': {
        'file_name': 'Plantilla_Planillados_GEMINI.xlsx',
        'sheet_name': 'Planillados',
        'headers': [
            'cédula', 'nombres', 'apellidos', 'celular', 'dirección',
            'barrio donde vive', 'fecha de expedición', 'municipio de votación',
            'zona y puesto', 'mesa', 'cedula lider'
        ],
        'sample_rows': [
            ['12345678', 'Juan Carlos', 'Pérez García', '3001234567', 'Calle 123 #45-67',
             'El Prado', '15/05/2010', 'Barranquilla', 'Zona 1 - Puesto 5', '001', '87654321'],
            ['87654321', 'María Fernanda', 'López Rodríguez', '3109876543', 'Carrera 50 #80-20',
             'Boston', '20/08/2012', 'Barranquilla', 'Zona 2 - Puesto 3', '015', ''],
        ],
        'instructions': [
            'PLANTILLA DE PLANILLADOS',
            'Campos obligatorios: cédula, nombres, apellidos.',
            'La columna "cedula lider" relaciona el planillado con su líder. '
            'Si el líder aún no existe, el registro queda pendiente de relación.',
        ],
    },
    'leaders': {
        'file_name': 'Plantilla_Lideres_GEMINI.xlsx',
        'sheet_name': 'Líderes',
        'headers': [
            'cédula', 'nombres', 'apellidos', 'celular', 'email', 'dirección',
            'barrio', 'municipio', 'meta de votantes', 'grupo'
        ],
        'sample_rows': [
            ['11223344', 'Carlos Andrés', 'Martínez Díaz', '3154567890', 'carlos@example.com',
             'Calle 72 #43-10', 'El Golf', 'Barranquilla', 50, 'Grupo Norte'],
            ['44332211', 'Ana Lucía', 'Gómez Torres', '3201112233', 'ana@example.com',
             'Carrera 38 #70-15', 'Las Delicias', 'Barranquilla', 30, ''],
        ],
        'instructions': [
            'PLANTILLA DE LÍDERES',
            'Campos obligatorios: cédula, nombres, apellidos.',
            'La columna "grupo" debe coincidir con el nombre de un grupo existente.',
            'La meta de votantes debe ser un número entero mayor o igual a 0.',
        ],
    },
    'candidates': {
        'file_name': 'Plantilla_Candidatos_GEMINI.xlsx',
        'sheet_name': 'Candidatos',
        'headers': [
            'nombre', 'email', 'teléfono', 'posición', 'partido', 'meta', 'descripción'
        ],
        'sample_rows': [
            ['Laura Restrepo', 'laura@example.com', '3005556677', 'Concejo', 'Partido Verde',
             5000, 'Candidata al concejo municipal'],
            ['Jorge Herrera', 'jorge@example.com', '3012223344', 'Alcaldía', 'Independiente',
             20000, ''],
        ],
        'instructions': [
            'PLANTILLA DE CANDIDATOS',
            'Campos obligatorios: nombre, email.',
            'El nombre y el email de cada candidato deben ser únicos.',
        ],
    },
    'groups': {
        'file_name': 'Plantilla_Grupos_GEMINI.xlsx',
        'sheet_name': 'Grupos',
        'headers': ['nombre', 'candidato', 'zona', 'meta', 'descripción'],
        'sample_rows': [
            ['Grupo Norte', 'Laura Restrepo', 'Norte', 1500, 'Barrios del norte de la ciudad'],
            ['Grupo Sur', 'Laura Restrepo', 'Sur', 1200, ''],
        ],
        'instructions': [
            'PLANTILLA DE GRUPOS',
            'Campos obligatorios: nombre, candidato.',
            'La columna "candidato" debe coincidir con el nombre de un candidato existente.',
            'El nombre del grupo debe ser único para cada candidato.',
        ],
    },
}

ENTITY_ALIASES = {
    'voters': 'planillados',
    'votantes': 'planillados',
    'lideres': 'leaders',
    'candidatos': 'candidates',
    'grupos': 'groups',
}


def resolve_entity(entity_type: str) -> str:
    """Canonical entity name for `entity_type`, accepting legacy aliases."""
    key = (entity_type or '').strip().lower()
    key = ENTITY_ALIASES.get(key, key)
    if key not in TEMPLATES:
        raise ValueError(f"Unknown entity type '{entity_type}'")
    return key


def build_template(entity_type: str) -> Tuple[str, bytes]:
    """
    Build the import template for an entity.

    The workbook holds the data sheet (headers, sample rows) and an
    'Instrucciones' sheet.

    Returns:
        (file name, .xlsx content)
    """
    config = TEMPLATES[resolve_entity(entity_type)]

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = config['sheet_name']
    _write_sheet(ws, config['headers'], config['sample_rows'])

    instructions = wb.create_sheet('Instrucciones')
    instructions.append(['INSTRUCCIONES DE USO'])
    instructions['A1'].font = Font(bold=True)
    for line in config['instructions'] + [''] + TEMPLATE_INSTRUCTIONS_COMMON:
        instructions.append([line])
    instructions.column_dimensions['A'].width = 80

    buffer = io.BytesIO()
    wb.save(buffer)
    return config['file_name'], buffer.getvalue()


# Reading

def _cell_text(value: Any) -> Any:
    """Normalize a raw cell: strip strings, keep dates, drop empties."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def read_spreadsheet(content: bytes, filename: str) -> Tuple[List[str], List[Dict[str, Any]]]:
    """
    Read the first sheet of an .xlsx/.xlsm or a .csv file.

    Args:
        content: File bytes
        filename: Original name, used to pick the reader

    Returns:
        (headers, rows) where each row maps header -> cell value plus its
        sheet row number under ROW_NUMBER_KEY. Fully empty rows are skipped
        without renumbering the rest.
    """
    suffix = Path(filename).suffix.lower()
    if suffix == '.csv':
        raw_rows = _read_csv_rows(content)
    else:
        wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        try:
            ws = wb.worksheets[0]
            raw_rows = [list(row) for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

    if not raw_rows:
        return [], []

    headers = ['' if h is None else str(h).strip() for h in raw_rows[0]]
    while headers and not headers[-1]:
        headers.pop()

    rows = []
    for row_number, raw in enumerate(raw_rows[1:], start=2):
        values = [_cell_text(v) for v in raw[:len(headers)]]
        if all(v is None for v in values):
            continue
        values += [None] * (len(headers) - len(values))
        row = {header: value for header, value in zip(headers, values) if header}
        row[ROW_NUMBER_KEY] = row_number
        rows.append(row)

    logger.info(f"Read {len(rows)} rows with {len(headers)} columns from {filename}")
    return headers, rows


def _read_csv_rows(content: bytes) -> List[List[Any]]:
    text = content.decode('utf-8-sig', errors='replace')
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=',;\t')
    except csv.Error:
        dialect = csv.excel
    return [row for row in csv.reader(io.StringIO(text), dialect)]


def json_safe(value: Any) -> Any:
    """Cell value usable in a JSON response."""
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
