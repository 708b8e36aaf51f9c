"""Claim status state machine.

    SUBMITTED -> PROCESSING -> APPROVED -> PAID
                            -> DENIED

DENIED and PAID are terminal. A transition is applied as a conditional UPDATE
on (id, status) so two requests racing from the same stale read cannot both
win; the loser gets ``ConcurrentUpdate`` and may retry after a fresh read.
An out-of-order request gets ``InvalidTransition`` and must not be retried.
"""
import logging
import secrets
import time
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from insurance_claims.config import get_claim_number_max_attempts
from insurance_claims.currency import Amount, to_decimal, to_exact_money, to_money
from insurance_claims.errors import (ClaimMismatch, ClaimNotFound, ClaimNumberExhausted, ConcurrentUpdate,
                                     InvalidAmount, InvalidTransition)
from insurance_claims.insurance_database import ClaimRecord, ClaimTransitionRow, utcnow
from insurance_claims.model import AdjudicationResult, Claim, ClaimStatus, ClaimTransitionEvent, ClaimTransitionRecord
from insurance_claims.services.notifications import AuditNotifier, LoggingNotifier

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[ClaimStatus, FrozenSet[ClaimStatus]] = {
    ClaimStatus.submitted: frozenset({ClaimStatus.processing}),
    ClaimStatus.processing: frozenset({ClaimStatus.approved, ClaimStatus.denied}),
    ClaimStatus.approved: frozenset({ClaimStatus.paid}),
    ClaimStatus.denied: frozenset(),
    ClaimStatus.paid: frozenset(),
}

TERMINAL = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

_SUFFIX_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def generate_claim_number() -> str:
    """``CLM-<epoch millis>-<5 base36 chars>``. Uniqueness is enforced by the table, not here."""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(5))
    return f"CLM-{int(time.time() * 1000)}-{suffix}"


def can_transition(from_status, to_status) -> bool:
    return ClaimStatus(to_status) in TRANSITIONS[ClaimStatus(from_status)]


def _emit(notifier: Optional[AuditNotifier], event: ClaimTransitionEvent) -> None:
    notifier = notifier or LoggingNotifier()
    try:
        notifier.notify(event)
    except Exception:
        # delivery is best effort; the transition is already committed
        logger.exception("Audit notifier failed for claim %s", event.claim_id)


def _get_record(db: Session, claim_id: int) -> ClaimRecord:
    record = db.query(ClaimRecord).filter(ClaimRecord.id == claim_id).first()
    if record is None:
        raise ClaimNotFound(f"Claim {claim_id} not found")
    return record


def _settled_amount(amount: Optional[Amount], ceiling, label: str, ceiling_label: str):
    ceiling = to_money(ceiling)
    if amount is None:
        return ceiling
    if to_decimal(amount) < 0:
        raise InvalidAmount(f"The {label} amount must not be negative, got {amount}")
    settled = to_exact_money(amount)
    if settled > ceiling:
        raise InvalidAmount(f"The {label} amount {settled} exceeds the {ceiling_label} {ceiling}")
    return settled


def _check_result(result: AdjudicationResult) -> None:
    gross = to_money(result.gross_amount)
    insurer = to_money(result.insurer_amount)
    patient = to_money(result.patient_amount)
    if gross < 0 or insurer < 0 or patient < 0:
        raise InvalidAmount("Claim amounts must not be negative")
    if insurer + patient != gross:
        raise InvalidAmount(f"Insurer ({insurer}) and patient ({patient}) shares do not add up to gross ({gross})")


def submit(db: Session, patient_id: str, service_ref: str, insurer_id: str, result: AdjudicationResult,
           actor: str, notifier: Optional[AuditNotifier] = None,
           supersedes_claim_id: Optional[int] = None) -> Claim:
    """Create a SUBMITTED claim carrying the engine's split.

    A generated claim number that collides with an existing one is retried
    with a fresh number, up to ``CLAIM_NUMBER_MAX_ATTEMPTS`` times.
    """
    _check_result(result)
    max_attempts = get_claim_number_max_attempts()

    for attempt in range(1, max_attempts + 1):
        claim_number = generate_claim_number()
        now = utcnow()
        record = ClaimRecord(
            claim_number=claim_number,
            patient_id=patient_id,
            service_ref=service_ref,
            insurer_id=insurer_id,
            currency=result.currency.value,
            gross_amount=to_money(result.gross_amount),
            insurer_amount=to_money(result.insurer_amount),
            patient_amount=to_money(result.patient_amount),
            pre_auth_required=result.pre_auth_required,
            deductible_applies=result.deductible_applies,
            max_coverage_capped=result.max_coverage_capped,
            status=ClaimStatus.submitted.value,
            submitted_by=actor,
            submitted_at=now,
            supersedes_claim_id=supersedes_claim_id,
        )
        db.add(record)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            taken = db.query(ClaimRecord.id).filter(ClaimRecord.claim_number == claim_number).first()
            if taken is None:
                raise
            logger.warning("Claim number %s already taken (attempt %s/%s)", claim_number, attempt, max_attempts)
            continue

        db.add(ClaimTransitionRow(
            claim_id=record.id,
            from_status=None,
            to_status=ClaimStatus.submitted.value,
            actor=actor,
            occurred_at=now,
        ))
        db.commit()
        db.refresh(record)
        logger.info(
            "Claim %s submitted by %s for patient %s (%s %s, insurer pays %s)",
            record.claim_number, actor, patient_id, record.currency, record.gross_amount, record.insurer_amount,
        )
        _emit(notifier, ClaimTransitionEvent(
            claim_id=record.id, from_status=None, to_status=ClaimStatus.submitted, actor=actor, timestamp=now,
        ))
        return Claim.model_validate(record)

    raise ClaimNumberExhausted(f"Could not allocate a unique claim number after {max_attempts} attempts")


def transition(db: Session, claim_id: int, to_status, actor: str, reason: Optional[str] = None,
               notifier: Optional[AuditNotifier] = None, expected_status=None,
               amount: Optional[Amount] = None) -> Claim:
    """Move a claim to ``to_status``.

    ``expected_status`` is the status the caller last saw. When omitted the
    current stored status is used. Either way the write only lands if the row
    still holds that status.

    ``amount`` is the approved amount on APPROVED (at most the insurer share)
    or the paid amount on PAID (at most the approved amount). Left out, it is
    the full ceiling.
    """
    to_status = ClaimStatus(to_status)
    record = _get_record(db, claim_id)
    from_status = ClaimStatus(expected_status) if expected_status is not None else ClaimStatus(record.status)

    if not can_transition(from_status, to_status):
        raise InvalidTransition(from_status.value, to_status.value)

    now = utcnow()
    values = {"status": to_status.value}
    if to_status is ClaimStatus.approved:
        values["approved_amount"] = _settled_amount(amount, record.insurer_amount, "approved", "insurer amount")
    elif to_status is ClaimStatus.paid:
        approved = record.approved_amount if record.approved_amount is not None else record.insurer_amount
        values["paid_amount"] = _settled_amount(amount, approved, "paid", "approved amount")
    elif amount is not None:
        raise InvalidAmount(f"An amount only applies when approving or paying a claim, not on {to_status.value}")
    if record.processed_at is None:
        values["processed_at"] = now
    if to_status is ClaimStatus.paid:
        values["paid_at"] = now
    if to_status is ClaimStatus.denied:
        values["denial_reason"] = reason

    updated = (
        db.query(ClaimRecord)
        .filter(ClaimRecord.id == claim_id)
        .filter(ClaimRecord.status == from_status.value)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        current = _get_record(db, claim_id).status
        logger.warning(
            "Concurrent update on claim %s: expected %s, found %s (wanted %s)",
            claim_id, from_status.value, current, to_status.value,
        )
        raise ConcurrentUpdate(f"Claim {claim_id} is now {current}, not {from_status.value}; re-read and retry")

    db.add(ClaimTransitionRow(
        claim_id=claim_id,
        from_status=from_status.value,
        to_status=to_status.value,
        actor=actor,
        reason=reason,
        occurred_at=now,
    ))
    db.commit()
    db.refresh(record)
    logger.info("Claim %s moved %s -> %s by %s", record.claim_number, from_status.value, to_status.value, actor)

    _emit(notifier, ClaimTransitionEvent(
        claim_id=claim_id, from_status=from_status, to_status=to_status, actor=actor, timestamp=now,
    ))
    return Claim.model_validate(record)


def history(db: Session, claim_id: int) -> List[ClaimTransitionRecord]:
    _get_record(db, claim_id)
    rows = (
        db.query(ClaimTransitionRow)
        .filter(ClaimTransitionRow.claim_id == claim_id)
        .order_by(ClaimTransitionRow.id)
        .all()
    )
    return [ClaimTransitionRecord.model_validate(r) for r in rows]


def supersede(db: Session, claim_id: int, result: AdjudicationResult, actor: str,
              notifier: Optional[AuditNotifier] = None, insurer_id: Optional[str] = None) -> Claim:
    """Submit a correction. The original claim is left exactly as it was.

    The correction keeps the original patient, service and insurer. Passing
    the ``insurer_id`` whose rule priced ``result`` guards against a split
    computed under another insurer's rule.
    """
    original = _get_record(db, claim_id)
    if insurer_id is not None and insurer_id != original.insurer_id:
        raise ClaimMismatch(
            f"Claim {original.claim_number} is with insurer {original.insurer_id}; "
            f"a correction priced for {insurer_id} cannot replace it"
        )
    return submit(
        db,
        patient_id=original.patient_id,
        service_ref=original.service_ref,
        insurer_id=original.insurer_id,
        result=result,
        actor=actor,
        notifier=notifier,
        supersedes_claim_id=original.id,
    )


def get_claim(db: Session, claim_id: int) -> Claim:
    return Claim.model_validate(_get_record(db, claim_id))


def get_by_number(db: Session, claim_number: str) -> Claim:
    record = db.query(ClaimRecord).filter(ClaimRecord.claim_number == claim_number).first()
    if record is None:
        raise ClaimNotFound(f"Claim {claim_number} not found")
    return Claim.model_validate(record)


def list_claims(db: Session, patient_id: Optional[str] = None, insurer_id: Optional[str] = None,
                status=None, limit: int = 100) -> List[Claim]:
    q = db.query(ClaimRecord)
    if patient_id:
        q = q.filter(ClaimRecord.patient_id == patient_id)
    if insurer_id:
        q = q.filter(ClaimRecord.insurer_id == insurer_id)
    if status is not None:
        q = q.filter(ClaimRecord.status == ClaimStatus(status).value)
    records = q.order_by(ClaimRecord.submitted_at.desc(), ClaimRecord.id.desc()).limit(limit).all()
    return [Claim.model_validate(r) for r in records]
