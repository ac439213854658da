"""
Spreadsheet I/O boundary (openpyxl).

The ledger file is a plain workbook: first sheet, header row, one row per
budget/actual contribution. This module only moves rows in and out of the
file; parsing and validation live in app.application.ingestion.
"""
import hashlib
import logging
import os
import tempfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter

from app.application.errors import PersistenceError

logger = logging.getLogger(__name__)

SHEET_TITLE = "예산데이터"


@dataclass(frozen=True)
class FileFingerprint:
    """Identity of a file version, compared by the watcher."""
    mtime_ns: int
    size: int
    sha256: str


def file_fingerprint(path: str | os.PathLike) -> Optional[FileFingerprint]:
    """Fingerprint of the file, or None when it does not exist."""
    p = Path(path)
    try:
        stat = p.stat()
        digest = hashlib.sha256(p.read_bytes()).hexdigest()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise PersistenceError(f"Cannot stat ledger file: {exc}", str(p)) from exc
    return FileFingerprint(mtime_ns=stat.st_mtime_ns, size=stat.st_size, sha256=digest)


def build_workbook(
    headers: Sequence[str],
    rows: Sequence[Dict[str, Any]],
    column_widths: Optional[Sequence[int]] = None,
) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    for col, header in enumerate(headers, 1):
        ws.cell(row=1, column=col, value=header)

    for row_idx, row in enumerate(rows, 2):
        for col, header in enumerate(headers, 1):
            ws.cell(row=row_idx, column=col, value=row.get(header))

    if column_widths:
        for i, width in enumerate(column_widths, 1):
            ws.column_dimensions[get_column_letter(i)].width = width
    return wb


def workbook_bytes(
    headers: Sequence[str],
    rows: Sequence[Dict[str, Any]],
    column_widths: Optional[Sequence[int]] = None,
) -> BytesIO:
    """Serialize rows to an in-memory .xlsx (downloads, templates)."""
    output = BytesIO()
    build_workbook(headers, rows, column_widths).save(output)
    output.seek(0)
    return output


def read_sheet_rows(source: Any) -> List[Dict[str, Any]]:
    """
    Read the first sheet as header -> value dicts.

    Args:
        source: path or binary file-like object

    Raises:
        PersistenceError: file missing, unreadable or not a workbook
    """
    try:
        wb = load_workbook(source, read_only=True, data_only=True)
    except FileNotFoundError as exc:
        raise PersistenceError("Ledger file not found", str(source)) from exc
    except Exception as exc:  # openpyxl raises zipfile/KeyError/InvalidFileException
        raise PersistenceError(f"Cannot read workbook: {exc}", str(source)) from exc

    # read_only workbooks parse the sheet XML lazily, so a truncated sheet
    # only fails while iterating
    try:
        ws = wb.worksheets[0]
        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if header_row is None:
            return []
        headers = [str(h).strip() if h is not None else None for h in header_row]

        rows: List[Dict[str, Any]] = []
        for values in rows_iter:
            if values is None or not any(v not in (None, "") for v in values):
                continue
            rows.append({
                header: value
                for header, value in zip(headers, values)
                if header
            })
        return rows
    except Exception as exc:  # ParseError, zipfile.BadZipFile, KeyError
        raise PersistenceError(f"Cannot read worksheet: {exc}", str(source)) from exc
    finally:
        wb.close()


class BudgetWorkbook:
    """
    File collaborator of the ledger store.

    Swappable for a test double exposing the same three methods.
    """

    def __init__(self, column_widths: Optional[Sequence[int]] = None):
        self.column_widths = column_widths

    def read_rows(self, path: str | os.PathLike) -> List[Dict[str, Any]]:
        if not Path(path).exists():
            raise PersistenceError("Ledger file not found", str(path))
        return read_sheet_rows(str(path))

    def write_rows(
        self,
        path: str | os.PathLike,
        headers: Sequence[str],
        rows: Sequence[Dict[str, Any]],
    ) -> None:
        """
        Write the whole sheet. The file is replaced atomically (temp file +
        os.replace) so a concurrent reader never sees a half-written workbook.
        """
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            wb = build_workbook(headers, rows, self.column_widths)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.stem}-", suffix=".xlsx", dir=str(target.parent)
            )
            os.close(fd)
            try:
                wb.save(tmp_name)
                os.replace(tmp_name, target)
            finally:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
        except OSError as exc:
            raise PersistenceError(f"Cannot write workbook: {exc}", str(target)) from exc
        except Exception as exc:  # IllegalCharacterError and other openpyxl failures
            raise PersistenceError(f"Cannot build workbook: {exc}", str(target)) from exc
        logger.info("Saved %d rows to %s", len(rows), target)

    def fingerprint(self, path: str | os.PathLike) -> Optional[FileFingerprint]:
        return file_fingerprint(path)
