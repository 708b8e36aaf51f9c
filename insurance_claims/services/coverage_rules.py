import logging
from datetime import date
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from insurance_claims.errors import CoverageRuleNotFound, DuplicateCoverageRule, InvalidCoverageRule
from insurance_claims.insurance_database import CoverageRuleRecord
from insurance_claims.model import CoverageRule, CoverageRuleUpdate

logger = logging.getLogger(__name__)

_RULE_FIELDS = (
    "copay_amount",
    "copay_percentage",
    "max_coverage_amount",
    "pre_auth_required",
    "deductible_applies",
    "effective_date",
    "expiration_date",
)


def build_coverage_rule(**fields) -> CoverageRule:
    """The only way a rule gets built from untrusted input.

    Both copay strategies set, neither set, or an out-of-range amount all end
    up as ``InvalidCoverageRule``.
    """
    try:
        return CoverageRule(**fields)
    except ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'rule'}: {err.get('msg')}"
            for err in exc.errors()
        )
        raise InvalidCoverageRule(messages) from None


def _find(db: Session, service_id: str, insurer_id: str) -> Optional[CoverageRuleRecord]:
    return (
        db.query(CoverageRuleRecord)
        .filter(CoverageRuleRecord.service_id == service_id)
        .filter(CoverageRuleRecord.insurer_id == insurer_id)
        .first()
    )


def _find_active(db: Session, service_id: str, insurer_id: str) -> CoverageRuleRecord:
    record = _find(db, service_id, insurer_id)
    if record is None or not record.is_active:
        raise CoverageRuleNotFound(f"No coverage rule for service {service_id} and insurer {insurer_id}")
    return record


def create_rule(db: Session, rule: CoverageRule, created_by: Optional[str] = None) -> CoverageRule:
    # re-run the constructor so a model built with model_construct can't slip through
    rule = build_coverage_rule(**rule.model_dump())
    record = _find(db, rule.service_id, rule.insurer_id)
    if record is not None and record.is_active:
        raise DuplicateCoverageRule(
            f"Coverage rule for service {rule.service_id} and insurer {rule.insurer_id} already exists"
        )

    if record is None:
        record = CoverageRuleRecord(service_id=rule.service_id, insurer_id=rule.insurer_id)
        db.add(record)
    for field in _RULE_FIELDS:
        setattr(record, field, getattr(rule, field))
    record.is_active = True
    record.created_by = created_by

    db.commit()
    db.refresh(record)
    logger.info(
        "Coverage rule created for %s/%s (%s copay)",
        rule.service_id, rule.insurer_id, rule.copay_strategy().value,
    )
    return CoverageRule.model_validate(record)


def get_rule(db: Session, service_id: str, insurer_id: str, on: Optional[date] = None) -> CoverageRule:
    """The active rule for (service, insurer).

    With ``on``, a rule whose effective/expiration window does not cover that
    date is treated as missing.
    """
    rule = CoverageRule.model_validate(_find_active(db, service_id, insurer_id))
    if on is not None and not rule.in_force(on):
        raise CoverageRuleNotFound(
            f"Coverage rule for service {service_id} and insurer {insurer_id} is not in force on {on}"
        )
    return rule


def update_rule(db: Session, service_id: str, insurer_id: str, changes: CoverageRuleUpdate) -> CoverageRule:
    """Apply a partial edit. The merged rule is validated before anything is written."""
    record = _find_active(db, service_id, insurer_id)
    merged = {field: getattr(record, field) for field in _RULE_FIELDS}
    merged.update(changes.model_dump(exclude_unset=True))
    rule = build_coverage_rule(service_id=record.service_id, insurer_id=record.insurer_id, **merged)

    for field in _RULE_FIELDS:
        setattr(record, field, getattr(rule, field))
    db.commit()
    db.refresh(record)
    logger.info("Coverage rule updated for %s/%s", service_id, insurer_id)
    return CoverageRule.model_validate(record)


def deactivate_rule(db: Session, service_id: str, insurer_id: str) -> None:
    record = _find_active(db, service_id, insurer_id)
    record.is_active = False
    db.commit()
    logger.info("Coverage rule deactivated for %s/%s", service_id, insurer_id)


def list_rules(db: Session, insurer_id: Optional[str] = None) -> List[CoverageRule]:
    q = db.query(CoverageRuleRecord).filter(CoverageRuleRecord.is_active.is_(True))
    if insurer_id:
        q = q.filter(CoverageRuleRecord.insurer_id == insurer_id)
    records = q.order_by(CoverageRuleRecord.insurer_id, CoverageRuleRecord.service_id).all()
    return [CoverageRule.model_validate(r) for r in records]
