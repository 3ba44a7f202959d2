# Overview: Pure installment-schedule generation for financed payment instruments.

"""
Installment schedules.

generate_schedule() expands (anchor date, count, cadence, default amount)
into exactly `count` dated installments, ordered by index.

DATE RULES:
- biweekly: installment i is due anchor + 15*i days
- monthly:  installment i is due anchor advanced by i calendar months,
            day-of-month kept where the month has it, else its last day

MERGE RULES (regeneration is a merge keyed by index, not an overwrite):
- an existing installment whose amount was edited keeps its amount
- an existing installment whose document number was edited keeps it
- dates are always recomputed
- existing entries at index >= count are dropped

The function is pure: same inputs (including `existing`) give the same output.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from ..time_utils import add_months
from ..validation import ValidationError, MAX_INSTALLMENT_COUNT


CADENCE_MONTHLY = "monthly"
CADENCE_BIWEEKLY = "biweekly"
VALID_CADENCES = {CADENCE_MONTHLY, CADENCE_BIWEEKLY}

BIWEEKLY_STEP_DAYS = 15


class ScheduleError(ValidationError):
    """Invalid schedule inputs (negative count, unknown cadence, ...)."""


@dataclass(frozen=True)
class ScheduledInstallment:
    index: int
    due_date: date
    amount_cents: int
    document_number: str | None = None
    amount_edited: bool = False
    document_edited: bool = False

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "due_date": self.due_date.isoformat(),
            "amount_cents": self.amount_cents,
            "document_number": self.document_number,
            "amount_edited": self.amount_edited,
            "document_edited": self.document_edited,
        }


@dataclass(frozen=True)
class InstallmentEdit:
    """A caller-supplied change to one installment of a schedule."""
    index: int
    amount_cents: int | None = None
    document_number: str | None = None

    @property
    def amount_edited(self) -> bool:
        return self.amount_cents is not None

    @property
    def document_edited(self) -> bool:
        return self.document_number is not None


def validate_cadence(cadence: str | None) -> str:
    if cadence is None or cadence == "":
        return CADENCE_MONTHLY
    if cadence not in VALID_CADENCES:
        raise ScheduleError(
            f"Invalid cadence '{cadence}'. Must be one of: {', '.join(sorted(VALID_CADENCES))}",
            field="cadence",
        )
    return cadence


def installment_due_date(anchor_date: date, index: int, cadence: str) -> date:
    if cadence == CADENCE_BIWEEKLY:
        return anchor_date + timedelta(days=BIWEEKLY_STEP_DAYS * index)
    return add_months(anchor_date, index)


def default_installment_amount(
    *,
    count: int,
    financed_amount_cents: int | None,
    installment_amount_cents: int | None = None,
    fallback_amount_cents: int | None = None,
) -> int:
    """
    Per-installment amount when nobody edited it.

    An explicit installment amount wins; otherwise the financed amount (or the
    instrument amount when no financed amount is given) split evenly, floored
    to the cent.
    """
    if installment_amount_cents is not None:
        return installment_amount_cents
    if count <= 0:
        return 0
    total = financed_amount_cents if financed_amount_cents is not None else (fallback_amount_cents or 0)
    return total // count


def sequential_document_number(first_document_number: str | None, index: int) -> str | None:
    """
    Derive the document number of installment `index` from the first one.

    Numeric first numbers are incremented and zero-padded to the same width
    ("0041" -> "0041", "0042", ...). Non-numeric values only label index 0.
    """
    if not first_document_number:
        return None
    first = first_document_number.strip()
    if first.isdigit():
        return str(int(first) + index).zfill(len(first))
    return first if index == 0 else None


def _edits_by_index(existing: Iterable) -> dict[int, object]:
    by_index: dict[int, object] = {}
    for item in existing or ():
        by_index[int(item.index)] = item
    return by_index


def generate_schedule(
    anchor_date: date,
    count: int,
    cadence: str,
    default_amount_cents: int,
    existing: Iterable = (),
    first_document_number: str | None = None,
) -> list[ScheduledInstallment]:
    """
    Expand a financed amount into a dated installment schedule.

    existing: previous installments (ORM rows, ScheduledInstallment or
    InstallmentEdit); anything exposing index, amount_cents, document_number,
    amount_edited and document_edited.
    """
    if count is None or count < 0:
        raise ScheduleError("installment_count must be >= 0", field="installment_count")
    if count > MAX_INSTALLMENT_COUNT:
        raise ScheduleError(
            f"installment_count cannot exceed {MAX_INSTALLMENT_COUNT}", field="installment_count"
        )
    if anchor_date is None:
        raise ScheduleError("anchor date is required", field="date")
    cadence = validate_cadence(cadence)

    previous = _edits_by_index(existing)
    schedule: list[ScheduledInstallment] = []

    for index in range(count):
        amount = default_amount_cents
        document = sequential_document_number(first_document_number, index)
        amount_edited = False
        document_edited = False

        prior = previous.get(index)
        if prior is not None:
            if prior.amount_edited and prior.amount_cents is not None:
                amount = prior.amount_cents
                amount_edited = True
            if prior.document_edited:
                document = prior.document_number
                document_edited = True

        schedule.append(
            ScheduledInstallment(
                index=index,
                due_date=installment_due_date(anchor_date, index, cadence),
                amount_cents=amount,
                document_number=document,
                amount_edited=amount_edited,
                document_edited=document_edited,
            )
        )

    return schedule
