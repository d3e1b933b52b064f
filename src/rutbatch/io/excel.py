"""Spreadsheet input and output (openpyxl)."""

import zipfile
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..config.logger import logger
from ..errors import InputSourceError
from ..models import Result

RESULT_SHEET = "Results"

RESULT_COLUMNS = [
    "Cedula",
    "Primer Apellido",
    "Segundo Apellido",
    "Primer Nombre",
    "Otros Nombres",
    "Estado",
    "Intentos",
    "Error",
    "Tiempo",
]

# Field keys in the order of the name/status columns above
FIELD_KEYS = ["primer_apellido", "segundo_apellido", "primer_nombre", "otros_nombres", "estado"]

PathLike = Union[str, Path]


def cell_to_identifier(value: Any) -> Optional[str]:
    """Stringify a cell value; None for blanks.

    Spreadsheets store long numbers as floats, so integral floats lose their
    trailing ``.0``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        text = str(value)
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    text = text.strip()
    return text or None


def read_identifiers(path: PathLike) -> List[str]:
    """Read identifiers from the first column of the first worksheet.

    The first row is a header and is skipped. Blank cells are dropped;
    duplicates are kept.

    Raises:
        InputSourceError: If the file is missing or is not a readable workbook.
    """
    path = Path(path)
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (OSError, InvalidFileException, zipfile.BadZipFile, KeyError) as e:
        raise InputSourceError(f"cannot read identifiers from {path}: {e}") from e

    try:
        if not workbook.worksheets:
            raise InputSourceError(f"{path} has no worksheets")
        sheet = workbook.worksheets[0]
        identifiers = []
        for row in sheet.iter_rows(min_row=2, max_col=1, values_only=True):
            identifier = cell_to_identifier(row[0] if row else None)
            if identifier is not None:
                identifiers.append(identifier)
    finally:
        workbook.close()

    logger.info("identifiers_loaded", path=str(path), count=len(identifiers))
    return identifiers


def result_row(result: Result) -> List[Any]:
    """One output row in RESULT_COLUMNS order."""
    if result.is_success:
        fields = result.fields or {}
        values = [fields.get(key) for key in FIELD_KEYS]
        error = None
    else:
        values = [None, None, None, None, "Error"]
        error = f"{result.error_kind.value}: {result.error_message}" if result.error_kind else result.error_message
    return [result.identifier, *values, result.attempts, error, f"{result.elapsed.total_seconds():.2f}s"]


def write_results(path: PathLike, results: Sequence[Result]) -> Path:
    """Write results, in the given order, to a new workbook."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = RESULT_SHEET
    sheet.append(RESULT_COLUMNS)
    for result in results:
        sheet.append(result_row(result))

    workbook.save(path)
    logger.info("results_written", path=str(path), rows=len(results))
    return path
