"""JSON export and run summary."""

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from ..config.logger import logger
from ..models import Result
from ..session.interfaces import MISSING_FIELD


@dataclass(frozen=True)
class RunSummary:
    """Aggregate counts of a finished run.

    ``no_data`` counts successful lookups whose status field came back empty.
    """
    total: int
    successful: int
    errors: int
    no_data: int
    total_elapsed: timedelta
    errors_by_kind: Dict[str, int] = field(default_factory=dict)

    @property
    def mean_elapsed(self) -> timedelta:
        if not self.total:
            return timedelta()
        return self.total_elapsed / self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "errors": self.errors,
            "no_data": self.no_data,
            "total_elapsed_seconds": round(self.total_elapsed.total_seconds(), 3),
            "mean_elapsed_seconds": round(self.mean_elapsed.total_seconds(), 3),
            "errors_by_kind": dict(self.errors_by_kind),
        }


def summarize(results: Sequence[Result]) -> RunSummary:
    successful = [r for r in results if r.is_success]
    no_data = sum(1 for r in successful if (r.fields or {}).get("estado", "") in ("", MISSING_FIELD))
    kinds = Counter(r.error_kind.value for r in results if not r.is_success and r.error_kind)
    return RunSummary(
        total=len(results),
        successful=len(successful),
        errors=len(results) - len(successful),
        no_data=no_data,
        total_elapsed=sum((r.elapsed for r in results), timedelta()),
        errors_by_kind=dict(kinds),
    )


def result_to_dict(result: Result) -> Dict[str, Any]:
    return {
        "identifier": result.identifier,
        "status": result.status.value,
        "fields": dict(result.fields) if result.fields else None,
        "error_kind": result.error_kind.value if result.error_kind else None,
        "error_message": result.error_message,
        "attempts": result.attempts,
        "elapsed_seconds": round(result.elapsed.total_seconds(), 3),
    }


def write_json(path: Union[str, Path], results: Sequence[Result], summary: RunSummary) -> Path:
    """Write results and the summary as one JSON document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document: Dict[str, Any] = {
        "summary": summary.to_dict(),
        "results": [result_to_dict(r) for r in results],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, ensure_ascii=False, indent=2)
    logger.info("results_json_written", path=str(path), rows=len(results))
    return path


def summary_lines(summary: RunSummary) -> List[str]:
    """Human-readable summary, one line per figure."""
    lines = [
        f"Total documents processed: {summary.total}",
        f"Successful queries: {summary.successful}",
        f"Failed queries: {summary.errors}",
        f"Without registry data: {summary.no_data}",
        f"Mean time per document: {summary.mean_elapsed.total_seconds():.2f}s",
    ]
    for kind, count in sorted(summary.errors_by_kind.items()):
        lines.append(f"  {kind}: {count}")
    return lines
