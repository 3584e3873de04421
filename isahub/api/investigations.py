"""Investigation API endpoints."""

from typing import Any, List, Literal, Optional, Union

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session as DBSession

from isahub.auth.dependencies import get_current_user, get_optional_user
from isahub.auth.guards import investigation_guard
from isahub.auth.policy import AccessTier, Permission
from isahub.db import get_db
from isahub.db.models import Investigation, User
from isahub.serializers import JSONAPI_MEDIA_TYPE, InvestigationSerializer
from isahub.services import investigation_service
from isahub.services.investigation_service import (
    GrantSpec,
    InvestigationChanges,
    PolicySpec,
    WriteResult,
)
from isahub.services.research_object import (
    RO_BUNDLE_MEDIA_TYPE,
    build_research_object,
    bundle_filename,
)

router = APIRouter(prefix="/api", tags=["investigations"])


class JSONAPIResponse(JSONResponse):
    media_type = JSONAPI_MEDIA_TYPE


def _parse_tier(value: Any) -> Any:
    if value is None:
        return None
    return AccessTier.parse(value)


class PermissionAttributes(BaseModel):
    contributor_type: Literal["Project", "User"]
    contributor_id: str = Field(min_length=1)
    access_type: AccessTier

    @field_validator("access_type", mode="before")
    @classmethod
    def parse_access_type(cls, v):
        return _parse_tier(v)


class PolicyAttributes(BaseModel):
    access_type: Optional[AccessTier] = None
    permissions: Optional[List[PermissionAttributes]] = None

    @field_validator("access_type", mode="before")
    @classmethod
    def parse_access_type(cls, v):
        return _parse_tier(v)

    def to_spec(self) -> PolicySpec:
        grants = None
        if self.permissions is not None:
            grants = [
                GrantSpec(
                    contributor_type=p.contributor_type,
                    contributor_id=p.contributor_id,
                    access_type=p.access_type,
                )
                for p in self.permissions
            ]
        return PolicySpec(access_type=self.access_type, permissions=grants)


class InvestigationAttributes(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    other_creators: Optional[str] = None
    project_ids: Optional[List[str]] = None


class InvestigationWriteRequest(BaseModel):
    investigation: InvestigationAttributes = Field(default_factory=InvestigationAttributes)
    policy_attributes: Optional[PolicyAttributes] = None
    # Creator ids, or [name, id] pairs as sent by the creator picker.
    creators: Optional[List[Union[str, List[str]]]] = None

    @field_validator("creators")
    @classmethod
    def normalize_creators(cls, v):
        if v is None:
            return None
        ids = []
        for item in v:
            if isinstance(item, list):
                if len(item) != 2:
                    raise ValueError("creator pairs must be [name, id]")
                item = item[1]
            ids.append(item)
        return ids

    def to_changes(self) -> InvestigationChanges:
        attrs = self.investigation
        return InvestigationChanges(
            title=attrs.title,
            description=attrs.description,
            other_creators=attrs.other_creators,
            project_ids=attrs.project_ids,
            creator_ids=self.creators,
        )

    def to_policy_spec(self) -> Optional[PolicySpec]:
        return self.policy_attributes.to_spec() if self.policy_attributes else None


def _document(investigation: Investigation, actor: Optional[User]) -> dict:
    return InvestigationSerializer(investigation, actor).serialize()


def _write_document(result: WriteResult, actor: User) -> dict:
    document = _document(result.investigation, actor)
    change = result.access_change
    if change is not None and change.awaiting_approval:
        document["meta"]["publish_approval"] = {
            "status": "waiting_for_approval",
            "requested_access": change.requested.name.lower(),
            "gatekeepers_notified": len(result.notification_ids),
        }
    return document


@router.get("/investigations")
async def list_investigations(
    project_id: Optional[str] = None,
    db: DBSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    investigations = investigation_service.list_investigations(db, current_user, project_id=project_id)
    return JSONAPIResponse(InvestigationSerializer.serialize_many(investigations, current_user))


@router.get("/programmes/{programme_id}/investigations")
async def list_programme_investigations(
    programme_id: str,
    db: DBSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    investigations = investigation_service.list_investigations(
        db, current_user, programme_id=programme_id
    )
    return JSONAPIResponse(InvestigationSerializer.serialize_many(investigations, current_user))


@router.get("/projects/{project_id}/investigations")
async def list_project_investigations(
    project_id: str,
    db: DBSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    investigations = investigation_service.list_investigations(db, current_user, project_id=project_id)
    return JSONAPIResponse(InvestigationSerializer.serialize_many(investigations, current_user))


@router.post("/investigations", status_code=status.HTTP_201_CREATED)
async def create_investigation(
    body: InvestigationWriteRequest,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = investigation_service.create_investigation(
        db, current_user, body.to_changes(), body.to_policy_spec()
    )
    return JSONAPIResponse(
        _write_document(result, current_user), status_code=status.HTTP_201_CREATED
    )


@router.get("/investigations/{investigation_id}")
async def show_investigation(
    investigation: Investigation = Depends(investigation_guard(Permission.VIEW)),
    current_user: Optional[User] = Depends(get_optional_user),
):
    return JSONAPIResponse(_document(investigation, current_user))


@router.get("/investigations/{investigation_id}/edit")
async def edit_investigation(
    investigation: Investigation = Depends(investigation_guard(Permission.EDIT)),
    current_user: Optional[User] = Depends(get_optional_user),
):
    return JSONAPIResponse(_document(investigation, current_user))


@router.put("/investigations/{investigation_id}")
@router.patch("/investigations/{investigation_id}")
async def update_investigation(
    investigation_id: str,
    body: InvestigationWriteRequest,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    investigation = investigation_service.get_investigation(db, investigation_id)
    result = investigation_service.update_investigation(
        db, current_user, investigation, body.to_changes(), body.to_policy_spec()
    )
    return JSONAPIResponse(_write_document(result, current_user))


@router.delete("/investigations/{investigation_id}")
async def delete_investigation(
    investigation_id: str,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    investigation = investigation_service.get_investigation(db, investigation_id)
    investigation_service.destroy_investigation(db, current_user, investigation, request=request)
    return {"status": "deleted", "redirect": "/api/investigations"}


@router.get("/investigations/{investigation_id}/new-based-on")
async def new_investigation_based_on(
    investigation_id: str,
    db: DBSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    investigation = investigation_service.get_investigation(db, investigation_id)
    form = investigation_service.new_form_based_on(current_user, investigation)
    return {"investigation": form, "based_on": investigation.id}


@router.get("/investigations/{investigation_id}/ro")
async def export_research_object(
    investigation: Investigation = Depends(investigation_guard(Permission.DOWNLOAD)),
    current_user: Optional[User] = Depends(get_optional_user),
):
    content = build_research_object(investigation, current_user)
    return Response(
        content=content,
        media_type=RO_BUNDLE_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{bundle_filename(investigation)}"'},
    )
