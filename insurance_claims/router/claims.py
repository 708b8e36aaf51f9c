from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from insurance_claims.dependencies import get_actor, get_api_key, get_audit_notifier
from insurance_claims.insurance_database import get_db
from insurance_claims.model import (Claim, ClaimStatus, ClaimSubmission, ClaimTransitionRecord, SupersedeRequest,
                                    TransitionRequest)
from insurance_claims.router.coverage import run_adjudication
from insurance_claims.services import claim_lifecycle
from insurance_claims.services.notifications import AuditNotifier

router = APIRouter(tags=["Claims"])


@router.post("/claims", response_model=Claim, status_code=201)
def submit_claim(
    submission: ClaimSubmission,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    notifier: AuditNotifier = Depends(get_audit_notifier),
    api_key: str = Depends(get_api_key),
):
    # the split always comes from the engine, never from the request body
    result = run_adjudication(db, submission)
    return claim_lifecycle.submit(
        db,
        patient_id=submission.patient_id,
        service_ref=submission.service_ref,
        insurer_id=submission.insurer_id,
        result=result,
        actor=actor,
        notifier=notifier,
    )


@router.get("/claims", response_model=List[Claim])
def list_claims(
    patient_id: Optional[str] = None,
    insurer_id: Optional[str] = None,
    status: Optional[ClaimStatus] = None,
    db: Session = Depends(get_db),
    api_key: str = Depends(get_api_key),
):
    return claim_lifecycle.list_claims(db, patient_id=patient_id, insurer_id=insurer_id, status=status)


@router.get("/claims/by-number/{claim_number}", response_model=Claim)
def get_claim_by_number(claim_number: str, db: Session = Depends(get_db), api_key: str = Depends(get_api_key)):
    return claim_lifecycle.get_by_number(db, claim_number)


@router.get("/claims/{claim_id}", response_model=Claim)
def get_claim(claim_id: int, db: Session = Depends(get_db), api_key: str = Depends(get_api_key)):
    return claim_lifecycle.get_claim(db, claim_id)


@router.post("/claims/{claim_id}/transitions", response_model=Claim)
def transition_claim(
    claim_id: int,
    request: TransitionRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    notifier: AuditNotifier = Depends(get_audit_notifier),
    api_key: str = Depends(get_api_key),
):
    return claim_lifecycle.transition(
        db,
        claim_id,
        request.to_status,
        actor,
        reason=request.reason,
        notifier=notifier,
        expected_status=request.expected_status,
        amount=request.amount,
    )


@router.get("/claims/{claim_id}/history", response_model=List[ClaimTransitionRecord])
def claim_history(claim_id: int, db: Session = Depends(get_db), api_key: str = Depends(get_api_key)):
    return claim_lifecycle.history(db, claim_id)


@router.post("/claims/{claim_id}/supersede", response_model=Claim, status_code=201)
def supersede_claim(
    claim_id: int,
    request: SupersedeRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    notifier: AuditNotifier = Depends(get_audit_notifier),
    api_key: str = Depends(get_api_key),
):
    claim_lifecycle.get_claim(db, claim_id)
    result = run_adjudication(db, request)
    return claim_lifecycle.supersede(db, claim_id, result, actor, notifier=notifier, insurer_id=request.insurer_id)
