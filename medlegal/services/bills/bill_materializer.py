"""Turns loosely-typed bill candidates from the LLM into MedicalBill rows."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from uuid import UUID

from dateutil import parser as date_parser
from pydantic import ValidationError as PydanticValidationError

from medlegal.core.exceptions import DatabaseError
from medlegal.database.models import MedicalBill
from medlegal.repositories.medical_bill_repository import MedicalBillRepository
from medlegal.schemas.bills import MedicalBillCreate
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

UNKNOWN_PROVIDER = "Unknown Provider"
ZERO_AMOUNT = Decimal("0.00")
VALID_STATUSES = {"pending", "verified", "disputed", "approved"}

_AMOUNT_CHARS = re.compile(r"[^\d.\-]")


def _first(candidate: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = candidate.get(key)
        if value not in (None, ""):
            return value
    return None


def parse_amount(value: Any) -> Decimal:
    """Parse an amount such as ``500``, ``"$1,234.50"`` or ``"USD 80"``.

    Anything unparseable becomes ``0.00``. The result has two decimal places.
    """
    if value is None or isinstance(value, bool):
        return ZERO_AMOUNT

    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    else:
        raw = _AMOUNT_CHARS.sub("", str(value))

    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        return ZERO_AMOUNT
    if not amount.is_finite():
        return ZERO_AMOUNT
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_date(value: Any, default: datetime) -> datetime:
    """Parse a date string; missing or unparseable values give ``default``."""
    if value is None or value == "":
        return default

    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            LOGGER.debug(f"Unparseable bill date {value!r}, using current time")
            return default

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_candidate(candidate: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Apply defaults to one bill candidate.

    Missing provider becomes ``Unknown Provider``, a missing or unparseable
    amount ``0.00``, missing dates the current time and a missing or unknown
    status ``pending``.
    """
    now = now or datetime.now(timezone.utc)

    provider = _first(candidate, "provider", "providerName", "provider_name", "facility")
    provider = str(provider).strip() if provider is not None else ""

    status = str(candidate.get("status") or "pending").strip().lower()
    if status not in VALID_STATUSES:
        LOGGER.info(f"Unknown bill status {status!r}, using 'pending'")
        status = "pending"

    treatment = _first(candidate, "treatment", "description", "service")
    insurance = _first(candidate, "insurance", "insuranceCarrier", "insurance_carrier")

    return {
        "provider": provider or UNKNOWN_PROVIDER,
        "amount": parse_amount(_first(candidate, "amount", "charge", "total")),
        "service_date": parse_date(_first(candidate, "serviceDate", "service_date", "date"), now),
        "bill_date": parse_date(_first(candidate, "billDate", "bill_date"), now),
        "treatment": str(treatment) if treatment is not None else None,
        "insurance": str(insurance) if insurance is not None else None,
        "status": status,
    }


@dataclass
class MaterializationResult:
    bills: List[MedicalBill] = field(default_factory=list)
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


class BillMaterializer:
    """Validates and persists bill candidates one at a time.

    A candidate that fails validation, duplicates an existing bill for the
    same case and document, or cannot be written is logged and skipped;
    the remaining candidates are still processed.
    """

    def __init__(self, repository: MedicalBillRepository):
        self.repository = repository

    async def materialize(
        self,
        candidates: List[Dict[str, Any]],
        case_id: UUID,
        document_id: Optional[UUID],
        created_by: UUID,
    ) -> MaterializationResult:
        result = MaterializationResult()
        now = datetime.now(timezone.utc)

        for index, candidate in enumerate(candidates):
            if not isinstance(candidate, dict):
                result.skipped += 1
                result.errors.append(f"Bill {index + 1}: not an object")
                continue

            try:
                bill = MedicalBillCreate(
                    **normalize_candidate(candidate, now),
                    case_id=case_id,
                    document_id=document_id,
                    created_by=created_by,
                    source="extracted",
                )
            except PydanticValidationError as e:
                LOGGER.warning(
                    "Bill candidate failed validation, skipping",
                    extra={"document_id": str(document_id), "index": index, "errors": e.errors()[:3]}
                )
                result.skipped += 1
                result.errors.append(f"Bill {index + 1}: {e.errors()[0]['msg']}")
                continue

            try:
                existing = await self.repository.find_duplicate(
                    case_id=case_id,
                    document_id=document_id,
                    provider=bill.provider,
                    amount=bill.amount,
                    service_date=bill.service_date,
                )
                if existing:
                    LOGGER.info(
                        "Skipping duplicate bill",
                        extra={"existing_bill_id": str(existing.id), "provider": bill.provider}
                    )
                    result.skipped += 1
                    continue

                created = await self.repository.create(**bill.model_dump())
            except DatabaseError as e:
                LOGGER.error(
                    "Failed to persist bill candidate",
                    extra={"document_id": str(document_id), "index": index, "error": str(e)}
                )
                result.skipped += 1
                result.errors.append(f"Bill {index + 1}: could not be saved")
                continue

            result.bills.append(created)

        LOGGER.info(
            "Bill materialization finished",
            extra={
                "document_id": str(document_id),
                "candidates": len(candidates),
                "created_count": len(result.bills),
                "skipped": result.skipped,
            },
        )
        return result
