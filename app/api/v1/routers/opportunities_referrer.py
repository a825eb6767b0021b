from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import service_http_exception
from app.models.user import User
from app.schemas.audit import HistoryResponse
from app.schemas.opportunity import (
    OpportunityCreateRequest,
    OpportunityDTO,
    OpportunityReferrerUpdateRequest,
)
from app.services import audit_history, opportunities
from app.services.audit import RequestMeta

router = APIRouter(prefix="/referrer/opportunities", tags=["opportunities-referrer"])


@router.post(
    "",
    response_model=OpportunityDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Submit or save a draft opportunity",
)
async def create_opportunity(
    payload: OpportunityCreateRequest,
    current_user: User = Depends(deps.require_referrer),
    meta: RequestMeta = Depends(deps.get_request_meta),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityDTO:
    try:
        return await opportunities.create_opportunity(
            db,
            payload.changes(),
            organisation_id=current_user.organisation_id,
            client_id=payload.client_id,
            actor_id=current_user.id,
            request_meta=meta,
        )
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc


@router.get("/{opportunity_id}", response_model=OpportunityDTO, summary="Get an own-organisation opportunity")
async def get_opportunity(
    opportunity_id: UUID,
    current_user: User = Depends(deps.require_referrer),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityDTO:
    try:
        return await opportunities.get_opportunity(
            db, opportunity_id, organisation_id=current_user.organisation_id
        )
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc


@router.patch("/{opportunity_id}", response_model=OpportunityDTO, summary="Update an own-organisation opportunity")
async def update_opportunity(
    opportunity_id: UUID,
    payload: OpportunityReferrerUpdateRequest,
    current_user: User = Depends(deps.require_referrer),
    meta: RequestMeta = Depends(deps.get_request_meta),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityDTO:
    try:
        return await opportunities.update_opportunity_referrer(
            db,
            opportunity_id,
            payload.changes(),
            organisation_id=current_user.organisation_id,
            actor_id=current_user.id,
            request_meta=meta,
        )
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc


@router.get(
    "/{opportunity_id}/history",
    response_model=HistoryResponse,
    summary="Own-organisation opportunity history feed",
)
async def opportunity_history(
    opportunity_id: UUID,
    current_user: User = Depends(deps.require_referrer),
    db: AsyncSession = Depends(deps.get_db_session),
) -> HistoryResponse:
    try:
        await opportunities.get_opportunity(db, opportunity_id, organisation_id=current_user.organisation_id)
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc
    return HistoryResponse(history=await audit_history.get_history(db, opportunity_id))
