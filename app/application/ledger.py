"""
Ledger store: the authoritative in-memory set of budget entries, kept in sync
with the ledger workbook.

States:
  IDLE     - nothing in flight
  LOADING  - reading + validating + merging the file, then swapping the map
  SAVING   - the full map was written; the guard stays up until the settle
             window (SAVE_SETTLE_SECONDS) has elapsed

File-change ticks (see app.application.scheduler) only reload when the file
fingerprint differs from the last one this store loaded or wrote, and never
while LOADING/SAVING; a change seen inside the settle window is remembered and
picked up by the first tick after it. Every write bumps a generation counter.

Persistence is best-effort: a failed load keeps the last valid map, a failed
save keeps the in-memory mutation and the call still succeeds.

All state is guarded by one RLock; the watcher tick runs on the scheduler
thread.
"""
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from decimal import InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from app.application.calculations import BudgetStats, calculate_stats
from app.application.errors import NotFoundError, PersistenceError, ValidationError
from app.application.exports import COLUMN_WIDTHS, PERSISTED_COLUMNS, entries_to_rows
from app.application.ingestion import IngestionReport, ingest_rows
from app.application.merge import MergedEntry
from app.application.query import BudgetFilter, filter_entries
from app.domain.budget_entry import (
    MAX_MONTH,
    MIN_MONTH,
    BudgetEntry,
    EntryKey,
    Vocabulary,
    to_amount,
)
from app.infrastructure.spreadsheet.workbook import BudgetWorkbook, FileFingerprint
from app.utils.validation import has_illegal_characters

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "department", "account_category", "month", "year",
    "budget_amount", "actual_amount", "project_name", "calculation_basis",
)
OPTIONAL_FIELDS = ("is_within_budget", "business_division", "cost_type")
# Accepted from callers but always recomputed
IGNORED_FIELDS = ("id", "execution_rate")


class LedgerState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SAVING = "saving"


@dataclass
class ImportResult:
    report: IngestionReport
    entries: List[BudgetEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.report.valid > 0,
            "total": self.report.total,
            "valid": self.report.valid,
            "invalid": self.report.invalid,
            "count": len(self.entries),
            "errors": self.report.errors,
            "rows": [r.to_dict() for r in self.report.rows if not r.is_valid],
            "entries": [e.to_dict() for e in self.entries],
        }


def _new_id() -> str:
    return uuid.uuid4().hex


class LedgerStore:
    """
    Single writer of the budget entry map and of the reentrancy guard.

    Usage:
        store = LedgerStore("data/budget.xlsx", settlement_month=9)
        store.start()                       # initial load
        store.create({...})                 # mutate + save
        store.check_for_changes()           # watcher tick
    """

    def __init__(
        self,
        path: str | Path,
        workbook: Optional[BudgetWorkbook] = None,
        settlement_month: int = 9,
        vocabulary: Vocabulary = Vocabulary(),
        save_settle_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = _new_id,
    ):
        if not 0 <= settlement_month <= MAX_MONTH:
            raise ValueError("settlement_month must be between 0 and 12")
        self.path = Path(path)
        self.settlement_month = settlement_month
        self.vocabulary = vocabulary
        self.save_settle_seconds = save_settle_seconds
        self._workbook = workbook or BudgetWorkbook(column_widths=COLUMN_WIDTHS)
        self._clock = clock
        self._new_id = id_factory

        self._lock = threading.RLock()
        self._entries: Dict[str, BudgetEntry] = {}
        self._loading = False
        self._saving_until = 0.0
        self._generation = 0
        self._last_fingerprint: Optional[FileFingerprint] = None
        self._pending_change = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> LedgerState:
        with self._lock:
            if self._loading:
                return LedgerState.LOADING
            if self._clock() < self._saving_until:
                return LedgerState.SAVING
            return LedgerState.IDLE

    @property
    def generation(self) -> int:
        """Number of saves issued by this store."""
        return self._generation

    @property
    def has_pending_change(self) -> bool:
        return self._pending_change

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def start(self) -> int:
        """Startup load. A missing file leaves the ledger empty."""
        self._load(reason="startup")
        return len(self._entries)

    def reload(self, path: str | Path | None = None) -> int:
        """
        Explicit reload, optionally switching to another file.

        Returns:
            number of entries after the reload
        """
        with self._lock:
            if path is not None:
                self.path = Path(path)
                self._last_fingerprint = None
            self._load(reason="reload")
            return len(self._entries)

    def check_for_changes(self) -> bool:
        """
        Watcher tick: reload when the file changed behind our back.

        Returns:
            True when a reload happened
        """
        with self._lock:
            try:
                current = self._workbook.fingerprint(self.path)
            except PersistenceError as exc:
                logger.warning("Ledger file check failed: %s", exc.message)
                return False

            if current == self._last_fingerprint:
                return False

            state = self.state
            if state is not LedgerState.IDLE:
                if not self._pending_change:
                    logger.info("Ledger file changed while %s; deferring reload", state.value)
                self._pending_change = True
                return False

            if current is None:
                logger.warning(
                    "Ledger file %s disappeared; keeping %d entries in memory",
                    self.path, len(self._entries),
                )
                self._last_fingerprint = None
                self._pending_change = False
                return False

            logger.info("Ledger file change detected: %s", self.path.name)
            return self._load(reason="file change")

    def _load(self, reason: str) -> bool:
        with self._lock:
            self._loading = True
            try:
                try:
                    rows = self._workbook.read_rows(self.path)
                    fingerprint = self._workbook.fingerprint(self.path)
                except PersistenceError as exc:
                    logger.warning(
                        "Ledger load (%s) failed, keeping %d entries: %s",
                        reason, len(self._entries), exc.message,
                    )
                    return False

                report = ingest_rows(rows, self.vocabulary, strict=True)
                entries: Dict[str, BudgetEntry] = {}
                for merged in report.merged.values():
                    entry_id = self._new_id()
                    entries[entry_id] = merged.to_entry(entry_id, self.settlement_month)

                self._entries = entries
                self._last_fingerprint = fingerprint
                self._pending_change = False
                logger.info(
                    "Loaded %d entries from %s (%s): %d rows, %d skipped",
                    len(entries), self.path, reason, report.total, report.invalid,
                )
                if report.total and not entries:
                    logger.warning("No entries loaded; check the column headers and the type column")
                return True
            finally:
                self._loading = False

    def _save(self) -> bool:
        """Write the whole map. Caller holds the lock."""
        self._generation += 1
        self._saving_until = self._clock() + self.save_settle_seconds
        rows = entries_to_rows(self._entries.values())
        try:
            self._workbook.write_rows(self.path, PERSISTED_COLUMNS, rows)
            self._last_fingerprint = self._workbook.fingerprint(self.path)
        except PersistenceError as exc:
            self._saving_until = 0.0
            logger.error(
                "Ledger save failed (generation %d), in-memory state kept: %s",
                self._generation, exc.message,
            )
            return False
        logger.info(
            "Saved %d entries (%d rows), generation %d",
            len(self._entries), len(rows), self._generation,
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> Tuple[BudgetEntry, ...]:
        """Read-only view for other components."""
        with self._lock:
            return tuple(self._entries.values())

    def get_all(self) -> List[BudgetEntry]:
        return list(self.snapshot())

    def get_filtered(self, flt: BudgetFilter | None = None) -> List[BudgetEntry]:
        return filter_entries(self.snapshot(), flt)

    def get_by_id(self, entry_id: str) -> BudgetEntry:
        with self._lock:
            entry = self._entries.get(entry_id)
        if entry is None:
            raise NotFoundError("Budget entry", entry_id)
        return entry

    def stats(self, flt: BudgetFilter | None = None, settlement_month: int | None = None) -> BudgetStats:
        all_entries = self.snapshot()
        month = self.settlement_month if settlement_month is None else settlement_month
        return calculate_stats(filter_entries(all_entries, flt), month, all_data=all_entries)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, data: Mapping[str, Any]) -> BudgetEntry:
        fields = self._checked_fields(data, partial=False)
        with self._lock:
            entry = self._build(fields)
            self._check_key_free(entry.key)
            self._entries[entry.id] = entry
            self._save()
        logger.info("Created budget entry %s", entry.id)
        return entry

    def create_many(self, items: Iterable[Mapping[str, Any]]) -> List[BudgetEntry]:
        """All items are checked before anything is stored; one save at the end."""
        checked = [self._checked_fields(item, partial=False, index=i) for i, item in enumerate(items)]
        with self._lock:
            created = [self._build(fields) for fields in checked]
            seen: Dict[EntryKey, int] = {}
            for i, entry in enumerate(created):
                self._check_key_free(entry.key, prefix=f"entry {i}: ")
                if entry.key in seen:
                    raise ValidationError(
                        f"entry {i}: duplicates entry {seen[entry.key]}",
                        details=[f"entry {i}: same department, account, month, year "
                                 f"and project as entry {seen[entry.key]}"],
                    )
                seen[entry.key] = i
            for entry in created:
                self._entries[entry.id] = entry
            self._save()
        logger.info("Created %d budget entries", len(created))
        return created

    def update(self, entry_id: str, partial: Mapping[str, Any]) -> BudgetEntry:
        changes = self._checked_fields(partial, partial=True)
        with self._lock:
            existing = self._entries.get(entry_id)
            if existing is None:
                raise NotFoundError("Budget entry", entry_id)
            updated = existing.with_changes(self.settlement_month, **changes)
            if updated.key != existing.key:
                self._check_key_free(updated.key, exclude_id=entry_id)
            self._entries[entry_id] = updated
            self._save()
        logger.info("Updated budget entry %s", entry_id)
        return updated

    def delete(self, entry_id: str) -> None:
        with self._lock:
            if self._entries.pop(entry_id, None) is None:
                raise NotFoundError("Budget entry", entry_id)
            self._save()
        logger.info("Deleted budget entry %s", entry_id)

    def clear(self) -> None:
        with self._lock:
            self._entries = {}
            self._save()
        logger.info("All budget entries cleared")

    def import_rows(self, raw_rows: Iterable[Mapping[str, Any]]) -> ImportResult:
        """
        Bulk import: validate rows, merge them by composite key, then upsert.

        Invalid rows are reported and dropped; valid rows proceed. A key that
        already exists in the ledger only gets the amount kinds present in
        the import (partial update); descriptive fields of the existing entry
        are kept. Importing the same rows twice gives the same ledger.
        """
        report = ingest_rows(raw_rows, self.vocabulary, strict=True)
        if not report.merged:
            return ImportResult(report=report)

        with self._lock:
            by_key: Dict[EntryKey, str] = {e.key: e.id for e in self._entries.values()}
            persisted: List[BudgetEntry] = []
            for key, merged in report.merged.items():
                existing_id = by_key.get(key)
                if existing_id is None:
                    entry = merged.to_entry(self._new_id(), self.settlement_month)
                else:
                    entry = self._entries[existing_id].with_changes(
                        self.settlement_month, **_amount_changes(merged)
                    )
                self._entries[entry.id] = entry
                by_key[key] = entry.id
                persisted.append(entry)
            self._save()

        logger.info(
            "Imported %d rows (%d invalid) into %d entries",
            report.valid, report.invalid, len(persisted),
        )
        return ImportResult(report=report, entries=persisted)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build(self, fields: Dict[str, Any]) -> BudgetEntry:
        return BudgetEntry.build(
            entry_id=self._new_id(),
            settlement_month=self.settlement_month,
            **fields,
        )

    def _find_by_key(self, key: EntryKey, exclude_id: str | None = None) -> BudgetEntry | None:
        for entry in self._entries.values():
            if entry.id != exclude_id and entry.key == key:
                return entry
        return None

    def _check_key_free(self, key: EntryKey, exclude_id: str | None = None, prefix: str = "") -> None:
        """Raise ValidationError when another entry already holds this composite key."""
        clash = self._find_by_key(key, exclude_id)
        if clash is not None:
            raise ValidationError(
                f"{prefix}budget entry already exists for this key: {clash.id}",
                details=[f"{prefix}duplicate of entry {clash.id}"],
            )

    def _checked_fields(
        self, data: Mapping[str, Any], partial: bool, index: int | None = None
    ) -> Dict[str, Any]:
        """
        Keep known fields, drop derived ones, validate the rest.

        Raises:
            ValidationError: with the list of failures in `details`
        """
        known = set(REQUIRED_FIELDS) | set(OPTIONAL_FIELDS)
        fields = {
            k: v for k, v in data.items()
            if k in known and not (k in OPTIONAL_FIELDS and v is None)
        }
        errors: List[str] = []

        unknown = [k for k in data if k not in known and k not in IGNORED_FIELDS]
        if unknown:
            errors.append(f"unknown fields: {', '.join(sorted(unknown))}")

        if not partial:
            for name in REQUIRED_FIELDS:
                if fields.get(name) is None:
                    errors.append(f"{name} is required")

        errors.extend(_field_errors(fields, self.vocabulary))
        if errors:
            prefix = f"entry {index}: " if index is not None else ""
            raise ValidationError(
                f"{prefix}invalid budget entry data",
                details=[prefix + e for e in errors],
            )

        for name in ("budget_amount", "actual_amount"):
            if name in fields:
                fields[name] = to_amount(fields[name])
        for name in ("department", "account_category", "project_name", "calculation_basis"):
            if name in fields:
                fields[name] = str(fields[name]).strip()
        return fields


def _amount_changes(merged: MergedEntry) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    if merged.has_budget:
        changes["budget_amount"] = merged.budget_amount
    if merged.has_actual:
        changes["actual_amount"] = merged.actual_amount
    return changes


def _field_errors(fields: Mapping[str, Any], vocabulary: Vocabulary) -> List[str]:
    errors: List[str] = []

    for name in ("project_name", "calculation_basis", "department", "account_category"):
        if name in fields and fields[name] is not None and not str(fields[name]).strip():
            errors.append(f"{name} must not be empty")
        elif has_illegal_characters(fields.get(name)):
            errors.append(f"{name} contains control characters")

    if fields.get("department") and not vocabulary.is_department(str(fields["department"]).strip()):
        errors.append(f"invalid department: {fields['department']}")
    if fields.get("account_category") and not vocabulary.is_account_category(
        str(fields["account_category"]).strip()
    ):
        errors.append(f"invalid account_category: {fields['account_category']}")
    if fields.get("business_division") is not None and not vocabulary.is_business_division(
        fields["business_division"]
    ):
        errors.append(f"invalid business_division: {fields['business_division']}")
    if fields.get("cost_type") is not None and not vocabulary.is_cost_type(fields["cost_type"]):
        errors.append(f"invalid cost_type: {fields['cost_type']}")

    month = fields.get("month")
    if month is not None and (not isinstance(month, int) or not MIN_MONTH <= month <= MAX_MONTH):
        errors.append(f"month must be between 1 and 12 (current: {month})")
    year = fields.get("year")
    if year is not None and (
        not isinstance(year, int) or not vocabulary.min_year <= year <= vocabulary.max_year
    ):
        errors.append(
            f"year must be between {vocabulary.min_year} and {vocabulary.max_year} (current: {year})"
        )

    for name in ("budget_amount", "actual_amount"):
        value = fields.get(name)
        if value is None:
            continue
        try:
            amount = to_amount(value)
        except (InvalidOperation, TypeError, ValueError):
            errors.append(f"{name} is not a number")
            continue
        if not amount.is_finite() or amount < 0:
            errors.append(f"{name} must be 0 or greater")
    return errors
