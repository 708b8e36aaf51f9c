from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from insurance_claims.code_systems import get_code_system_labels
from insurance_claims.currency import currency_info, format_money, supported_currencies
from insurance_claims.dependencies import get_actor, get_api_key
from insurance_claims.insurance_database import get_db
from insurance_claims.model import (CodeCorrection, CodeEntryInput, CodeSystemLabels, CodeType, ImportReport,
                                    MedicalCodeEntry, parse_code_type)
from insurance_claims.services import code_registry

router = APIRouter(tags=["Reference data"])


def _code_type(value: str) -> CodeType:
    try:
        return parse_code_type(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@router.get("/currencies")
def list_currencies(region: Optional[str] = None, api_key: str = Depends(get_api_key)):
    return [info._asdict() for info in supported_currencies(region)]


@router.get("/currencies/{code}/format")
def format_amount(code: str, amount: str = Query(...), api_key: str = Depends(get_api_key)):
    info = currency_info(code)
    return {"currency": info.code, "symbol": info.symbol, "formatted": format_money(amount, info.code)}


@router.get("/countries/{country_id}/code-systems", response_model=CodeSystemLabels)
def code_system_labels(country_id: str, api_key: str = Depends(get_api_key)):
    return get_code_system_labels(country_id)


@router.post("/countries/{country_id}/codes/import", response_model=ImportReport)
def import_codes(
    country_id: str,
    rows: List[Dict[str, Any]] = Body(...),
    replace: bool = False,
    source: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    api_key: str = Depends(get_api_key),
):
    # rows are validated one by one in the registry so one bad row can't sink the batch
    return code_registry.bulk_import(db, country_id, rows, replace=replace, source=source, uploaded_by=actor)


@router.get("/code-uploads/{upload_id}", response_model=ImportReport)
def get_upload(upload_id: int, db: Session = Depends(get_db), api_key: str = Depends(get_api_key)):
    return code_registry.get_upload(db, upload_id)


@router.post("/countries/{country_id}/codes", response_model=MedicalCodeEntry, status_code=201)
def add_code(
    country_id: str,
    entry: CodeEntryInput,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    api_key: str = Depends(get_api_key),
):
    return code_registry.add_code(db, country_id, entry, uploaded_by=actor)


@router.get("/countries/{country_id}/codes", response_model=List[MedicalCodeEntry])
def search_codes(
    country_id: str,
    code_type: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    api_key: str = Depends(get_api_key),
):
    parsed_type = _code_type(code_type) if code_type else None
    return code_registry.search(db, country_id, code_type=parsed_type, query=q, limit=limit)


@router.get("/countries/{country_id}/codes/{code_type}/{code}", response_model=MedicalCodeEntry)
def lookup_code(
    country_id: str,
    code_type: str,
    code: str,
    db: Session = Depends(get_db),
    api_key: str = Depends(get_api_key),
):
    return code_registry.lookup(db, country_id, _code_type(code_type), code)


@router.put("/countries/{country_id}/codes/{code_type}/{code}", response_model=MedicalCodeEntry)
def correct_code(
    country_id: str,
    code_type: str,
    code: str,
    correction: CodeCorrection,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    api_key: str = Depends(get_api_key),
):
    return code_registry.supersede(db, country_id, _code_type(code_type), code, correction, uploaded_by=actor)
