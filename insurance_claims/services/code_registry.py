import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from insurance_claims.errors import CodeNotFound, DuplicateCode, NotFound
from insurance_claims.insurance_database import MedicalCode, MedicalCodeUpload, utcnow
from insurance_claims.model import (CodeCorrection, CodeEntryInput, CodeType, ImportReport, ImportRow,
                                    MedicalCodeEntry, parse_code_type)

logger = logging.getLogger(__name__)


def _active_query(db: Session, country_id: str, code_type: CodeType, code: str):
    return (
        db.query(MedicalCode)
        .filter(MedicalCode.country_id == country_id)
        .filter(MedicalCode.code_type == code_type.value)
        .filter(MedicalCode.code == code)
        .filter(MedicalCode.is_active.is_(True))
    )


def _row_error(index: int, exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "row"
        parts.append(f"{field}: {err.get('msg')}")
    return f"Row {index}: " + "; ".join(parts)


def lookup(db: Session, country_id: str, code_type, code: str, as_of: Optional[datetime] = None) -> MedicalCodeEntry:
    """Find a code in a country's namespace.

    Without ``as_of`` the current active entry is returned. With ``as_of`` the
    entry that was in effect at that moment is returned, so a historical claim
    resolves to the description and price it was billed against.
    """
    code_type = parse_code_type(code_type)
    code = code.strip()
    if as_of is None:
        record = _active_query(db, country_id, code_type, code).first()
    else:
        record = (
            db.query(MedicalCode)
            .filter(MedicalCode.country_id == country_id)
            .filter(MedicalCode.code_type == code_type.value)
            .filter(MedicalCode.code == code)
            .filter(MedicalCode.effective_from <= as_of)
            .filter(or_(MedicalCode.superseded_at.is_(None), MedicalCode.superseded_at > as_of))
            .order_by(MedicalCode.effective_from.desc())
            .first()
        )
    if record is None:
        raise CodeNotFound(f"{code_type.value} code {code!r} not found for country {country_id}")
    return MedicalCodeEntry.model_validate(record)


def search(db: Session, country_id: str, code_type=None, query: Optional[str] = None,
           limit: int = 50) -> List[MedicalCodeEntry]:
    q = (
        db.query(MedicalCode)
        .filter(MedicalCode.country_id == country_id)
        .filter(MedicalCode.is_active.is_(True))
    )
    if code_type is not None:
        q = q.filter(MedicalCode.code_type == parse_code_type(code_type).value)
    if query:
        term = f"%{query.strip()}%"
        q = q.filter(or_(MedicalCode.code.ilike(term), MedicalCode.description.ilike(term)))
    records = q.order_by(MedicalCode.code_type, MedicalCode.code).limit(limit).all()
    return [MedicalCodeEntry.model_validate(r) for r in records]


def _supersede_record(db: Session, current: MedicalCode, *, description: str, category: Optional[str],
                      standard_amount, source: str, uploaded_by: Optional[str]) -> MedicalCode:
    now = utcnow()
    current.is_active = False
    current.superseded_at = now
    # the partial unique index must see the old row inactive before the new one lands
    db.flush()

    replacement = MedicalCode(
        country_id=current.country_id,
        code_type=current.code_type,
        code=current.code,
        description=description,
        category=category,
        standard_amount=standard_amount,
        source=source,
        uploaded_by=uploaded_by,
        is_active=True,
        effective_from=now,
    )
    db.add(replacement)
    db.flush()
    current.superseded_by_id = replacement.id
    return replacement


def add_code(db: Session, country_id: str, entry: CodeEntryInput, uploaded_by: Optional[str] = None) -> MedicalCodeEntry:
    if _active_query(db, country_id, entry.code_type, entry.code).first() is not None:
        raise DuplicateCode(f"{entry.code_type.value} code {entry.code!r} already exists for country {country_id}")

    record = MedicalCode(
        country_id=country_id,
        code_type=entry.code_type.value,
        code=entry.code,
        description=entry.description,
        category=entry.category,
        standard_amount=entry.standard_amount,
        source="manual",
        uploaded_by=uploaded_by,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return MedicalCodeEntry.model_validate(record)


def supersede(db: Session, country_id: str, code_type, code: str, correction: CodeCorrection,
              uploaded_by: Optional[str] = None) -> MedicalCodeEntry:
    """Correct an entry without touching the row historical claims point at."""
    code_type = parse_code_type(code_type)
    current = _active_query(db, country_id, code_type, code.strip()).first()
    if current is None:
        raise CodeNotFound(f"{code_type.value} code {code!r} not found for country {country_id}")

    changes = correction.model_dump(exclude_unset=True)
    replacement = _supersede_record(
        db,
        current,
        description=changes.get("description") or current.description,
        category=changes.get("category", current.category),
        standard_amount=changes.get("standard_amount", current.standard_amount),
        source="manual",
        uploaded_by=uploaded_by,
    )
    db.commit()
    db.refresh(replacement)
    return MedicalCodeEntry.model_validate(replacement)


def bulk_import(db: Session, country_id: str, rows: Sequence[Mapping[str, Any]], replace: bool = False,
                source: Optional[str] = None, uploaded_by: Optional[str] = None) -> ImportReport:
    """Import already-parsed rows into one country's registry.

    Rows are handled one at a time. A malformed row, a repeat inside the same
    batch, or (unless ``replace``) a code that already exists is skipped and
    described in ``errors``; the rest of the batch still imports. In replace
    mode an existing code is superseded rather than overwritten.
    """
    report = ImportReport(processed=len(rows))
    seen = set()

    for index, raw in enumerate(rows, start=1):
        try:
            row = ImportRow.model_validate(raw)
        except ValidationError as exc:
            report.errors.append(_row_error(index, exc))
            report.skipped += 1
            continue

        key = (row.codeType, row.code)
        label = f"{row.codeType.value} code {row.code!r}"
        if key in seen:
            duplicate = DuplicateCode(f"{label} repeated in this import")
            report.errors.append(f"Row {index}: {duplicate}")
            report.skipped += 1
            continue
        seen.add(key)

        existing = _active_query(db, country_id, row.codeType, row.code).first()
        if existing is not None and not replace:
            duplicate = DuplicateCode(f"{label} already exists")
            report.errors.append(f"Row {index}: {duplicate}")
            report.skipped += 1
            continue

        if existing is not None:
            _supersede_record(
                db,
                existing,
                description=row.description,
                category=row.category,
                standard_amount=row.amount,
                source="bulk_import",
                uploaded_by=uploaded_by,
            )
        else:
            db.add(MedicalCode(
                country_id=country_id,
                code_type=row.codeType.value,
                code=row.code,
                description=row.description,
                category=row.category,
                standard_amount=row.amount,
                source="bulk_import",
                uploaded_by=uploaded_by,
            ))
        report.imported += 1

    upload = MedicalCodeUpload(
        country_id=country_id,
        source=source,
        replace_mode=replace,
        records_processed=report.processed,
        records_imported=report.imported,
        records_skipped=report.skipped,
        errors=list(report.errors),
        status="completed",
        uploaded_by=uploaded_by,
        completed_at=utcnow(),
    )
    db.add(upload)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    report.upload_id = upload.id

    logger.info(
        "Imported %s/%s codes for country %s (%s skipped)",
        report.imported, report.processed, country_id, report.skipped,
    )
    if report.skipped:
        logger.warning("Code import for %s skipped %s rows", country_id, report.skipped)
    return report


def get_upload(db: Session, upload_id: int) -> ImportReport:
    upload = db.query(MedicalCodeUpload).filter(MedicalCodeUpload.id == upload_id).first()
    if upload is None:
        raise NotFound(f"Upload {upload_id} not found")
    return ImportReport(
        processed=upload.records_processed or 0,
        imported=upload.records_imported or 0,
        skipped=upload.records_skipped or 0,
        errors=list(upload.errors or []),
        upload_id=upload.id,
    )
