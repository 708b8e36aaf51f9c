# insurance_claims/dependencies.py
from fastapi import BackgroundTasks, Header, HTTPException, status
from insurance_claims.config import get_valid_api_keys
from insurance_claims.services.notifications import AuditNotifier, BackgroundNotifier, get_notifier
import logging

console = logging.getLogger("X-API-Key")


def get_api_key(api_key: str = Header(..., alias="X-API-Key")) -> str:
    valid_keys = get_valid_api_keys()
    if api_key not in valid_keys:
        console.warning("Unauthorized API access attempt with key ending %s", api_key[-4:])
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key"
        )
    return api_key


def get_actor(actor: str = Header("system", alias="X-Actor")) -> str:
    # identity is resolved upstream; this only carries who to blame in the audit trail
    return actor.strip() or "system"


def get_audit_notifier(background_tasks: BackgroundTasks) -> AuditNotifier:
    # webhook calls must not hold up the response
    return BackgroundNotifier(get_notifier(), background_tasks)
