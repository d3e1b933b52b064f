"""Identifier input and result output."""

from .excel import RESULT_COLUMNS, read_identifiers, write_results
from .pdf import write_pdf
from .report import RunSummary, result_to_dict, summarize, write_json

__all__ = [
    "RESULT_COLUMNS",
    "RunSummary",
    "read_identifiers",
    "result_to_dict",
    "summarize",
    "write_json",
    "write_pdf",
    "write_results",
]
