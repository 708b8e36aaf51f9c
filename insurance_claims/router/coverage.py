from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from insurance_claims.dependencies import get_actor, get_api_key
from insurance_claims.errors import InvalidAmount
from insurance_claims.insurance_database import get_db, utcnow
from insurance_claims.model import (AdjudicationRequest, AdjudicationResponse, AdjudicationResult, CoverageRule,
                                    CoverageRuleInput, CoverageRuleUpdate)
from insurance_claims.services import code_registry, coverage_rules
from insurance_claims.services.adjudication import adjudicate, adjudicate_service

router = APIRouter(tags=["Coverage"])


def run_adjudication(db: Session, request: AdjudicationRequest) -> AdjudicationResult:
    """Price the request and split it with the stored rule for (service, insurer).

    The gross comes from ``gross_amount`` when given, else ``unit_price`` times
    ``quantity``, else the registry code's standard amount. The rule must be in
    force on ``service_date``, which defaults to today.
    """
    service_date = request.service_date or utcnow().date()
    rule = coverage_rules.get_rule(db, request.service_id, request.insurer_id, on=service_date)
    if request.gross_amount is not None:
        return adjudicate(request.gross_amount, rule, request.currency)

    entry = None
    if request.unit_price is None:
        if not (request.country_id and request.code_type and request.code):
            raise InvalidAmount("Provide gross_amount, unit_price, or country_id/code_type/code to price the service")
        entry = code_registry.lookup(db, request.country_id, request.code_type, request.code)
    return adjudicate_service(
        rule, request.currency, entry=entry, unit_price=request.unit_price, quantity=request.quantity,
    )


@router.post("/coverage-rules", response_model=CoverageRule, status_code=201)
def create_rule(
    payload: CoverageRuleInput,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    api_key: str = Depends(get_api_key),
):
    rule = coverage_rules.build_coverage_rule(**payload.model_dump(exclude_none=True))
    return coverage_rules.create_rule(db, rule, created_by=actor)


@router.get("/coverage-rules", response_model=List[CoverageRule])
def list_rules(insurer_id: Optional[str] = None, db: Session = Depends(get_db), api_key: str = Depends(get_api_key)):
    return coverage_rules.list_rules(db, insurer_id)


@router.get("/coverage-rules/{service_id}/{insurer_id}", response_model=CoverageRule)
def get_rule(service_id: str, insurer_id: str, db: Session = Depends(get_db), api_key: str = Depends(get_api_key)):
    return coverage_rules.get_rule(db, service_id, insurer_id)


@router.patch("/coverage-rules/{service_id}/{insurer_id}", response_model=CoverageRule)
def update_rule(
    service_id: str,
    insurer_id: str,
    changes: CoverageRuleUpdate,
    db: Session = Depends(get_db),
    api_key: str = Depends(get_api_key),
):
    return coverage_rules.update_rule(db, service_id, insurer_id, changes)


@router.delete("/coverage-rules/{service_id}/{insurer_id}", status_code=204)
def deactivate_rule(service_id: str, insurer_id: str, db: Session = Depends(get_db),
                    api_key: str = Depends(get_api_key)):
    coverage_rules.deactivate_rule(db, service_id, insurer_id)
    return Response(status_code=204)


@router.post("/adjudicate", response_model=AdjudicationResponse)
def adjudicate_claim(request: AdjudicationRequest, db: Session = Depends(get_db),
                     api_key: str = Depends(get_api_key)):
    result = run_adjudication(db, request)
    return AdjudicationResponse(result=result, display=result.display())
