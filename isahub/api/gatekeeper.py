"""Gatekeeper approval endpoints for held publications."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from isahub.api.investigations import JSONAPIResponse
from isahub.auth.dependencies import get_current_user
from isahub.core.logging import get_logger
from isahub.db import get_db
from isahub.db.models import User
from isahub.serializers import InvestigationSerializer
from isahub.services.audit_service import build_audit_entry
from isahub.services.investigation_service import get_investigation
from isahub.services.notification_service import deliver_queued
from isahub.services.publishing_service import decide_publication, requested_approvals_for

logger = get_logger(__name__)
router = APIRouter(prefix="/api/gatekeeper", tags=["gatekeeper"])


class DecisionRequest(BaseModel):
    decision: Literal["approve", "reject"]
    comment: Optional[str] = Field(default=None, max_length=2000)


@router.get("/requested-approvals")
async def list_requested_approvals(
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    investigations = requested_approvals_for(db, current_user)
    return JSONAPIResponse(InvestigationSerializer.serialize_many(investigations, current_user))


@router.post("/requested-approvals/{investigation_id}")
async def decide(
    investigation_id: str,
    body: DecisionRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    investigation = get_investigation(db, investigation_id)
    approve = body.decision == "approve"
    notification = decide_publication(
        db, investigation, current_user, approve=approve, comment=body.comment
    )
    db.add(
        build_audit_entry(
            event_type=f"publication.{body.decision}",
            user_id=current_user.id,
            request=request,
            data={"investigation_id": investigation.id},
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("Publish decision failed", data={"investigation_id": investigation_id}, exc_info=True)
        raise

    if notification is not None:
        deliver_queued(db, [notification.id])
    logger.info(
        "Publish decision recorded",
        data={"investigation_id": investigation_id, "decision": body.decision},
    )
    db.refresh(investigation)
    return JSONAPIResponse(InvestigationSerializer(investigation, current_user).serialize())
