from __future__ import annotations

from decimal import Decimal
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from fieldstock.utils.identifiers import normalize_code

from . import models, schemas

logger = logging.getLogger(__name__)

# Installation variants are settled under the plain package code.
SETTLEMENT_CODE_ALIASES = {
    "I_1P": "1P",
    "I_2P": "2P",
    "I_3P": "3P",
}


def normalize_settlement_code(code: str) -> str:
    normalized = normalize_code(code)
    return SETTLEMENT_CODE_ALIASES.get(normalized, normalized)


def resolve_rate(db: Session, code: str) -> Optional[models.RateDefinition]:
    return (
        db.query(models.RateDefinition)
        .filter(models.RateDefinition.code == normalize_settlement_code(code))
        .first()
    )


def rewrite_settlement_entries(
    db: Session,
    *,
    order_id: int,
    work_codes: Iterable[schemas.WorkCodeLine],
) -> List[str]:
    """
    Replace the order's settlement entries with ``work_codes``.

    Codes without a rate definition are created with a zero amount so the
    completion is not blocked; a warning names them.
    """
    db.query(models.OrderSettlementEntry).filter(
        models.OrderSettlementEntry.order_id == order_id
    ).delete(synchronize_session=False)

    lines = [(normalize_settlement_code(line.code), line.quantity) for line in work_codes]
    if not lines:
        db.flush()
        return []

    codes = sorted({code for code, _ in lines})
    known = {
        rate.code
        for rate in db.query(models.RateDefinition).filter(models.RateDefinition.code.in_(codes)).all()
    }
    missing = [code for code in codes if code not in known]

    warnings: List[str] = []
    if missing:
        for code in missing:
            db.add(models.RateDefinition(code=code, amount=Decimal("0")))
        warnings.append(f"Missing rate definitions created with amount 0: {', '.join(missing)}")
        logger.warning(
            "Auto-created zero-amount rate definitions",
            extra={"order_id": order_id, "codes": missing},
        )

    for code, quantity in lines:
        db.add(models.OrderSettlementEntry(order_id=order_id, code=code, quantity=quantity))
    db.flush()
    return warnings


def settlement_total(db: Session, *, order_id: int) -> Decimal:
    total = Decimal("0")
    entries = (
        db.query(models.OrderSettlementEntry)
        .filter(models.OrderSettlementEntry.order_id == order_id)
        .all()
    )
    for entry in entries:
        rate = resolve_rate(db, entry.code)
        if rate is not None:
            total += Decimal(rate.amount) * entry.quantity
    return total
