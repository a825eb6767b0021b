from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import service_http_exception
from app.models.user import User
from app.schemas.audit import HistoryResponse
from app.schemas.opportunity import (
    OpportunityAdminUpdateRequest,
    OpportunityCreateRequest,
    OpportunityDTO,
    OpportunityListResponse,
    UnqualifyRequest,
)
from app.services import audit_history, opportunities
from app.services.audit import RequestMeta

router = APIRouter(prefix="/admin/opportunities", tags=["opportunities-admin"])


@router.post(
    "",
    response_model=OpportunityDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create an opportunity for any organisation",
)
async def create_opportunity(
    payload: OpportunityCreateRequest,
    current_user: User = Depends(deps.require_admin),
    meta: RequestMeta = Depends(deps.get_request_meta),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityDTO:
    if payload.organisation_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "organisation_required", "message": "Organisation is required"},
        )
    try:
        return await opportunities.create_opportunity(
            db,
            payload.changes(),
            organisation_id=payload.organisation_id,
            client_id=payload.client_id,
            actor_id=current_user.id,
            request_meta=meta,
        )
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc


@router.get(
    "/unqualified",
    response_model=OpportunityListResponse,
    summary="List opportunities flagged as unqualified",
)
async def list_unqualified(
    current_user: User = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityListResponse:
    items = await opportunities.list_unqualified(db)
    return OpportunityListResponse(items=items, total=len(items))


@router.get("/{opportunity_id}", response_model=OpportunityDTO, summary="Get an opportunity")
async def get_opportunity(
    opportunity_id: UUID,
    current_user: User = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityDTO:
    try:
        return await opportunities.get_opportunity(db, opportunity_id)
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc


@router.patch("/{opportunity_id}", response_model=OpportunityDTO, summary="Update an opportunity")
async def update_opportunity(
    opportunity_id: UUID,
    payload: OpportunityAdminUpdateRequest,
    current_user: User = Depends(deps.require_admin),
    meta: RequestMeta = Depends(deps.get_request_meta),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityDTO:
    try:
        return await opportunities.update_opportunity_admin(
            db,
            opportunity_id,
            payload.changes(),
            actor_id=current_user.id,
            finalise_complete=payload.finalise_complete,
            request_meta=meta,
        )
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc


@router.delete(
    "/{opportunity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Soft-delete an opportunity",
)
async def delete_opportunity(
    opportunity_id: UUID,
    current_user: User = Depends(deps.require_admin),
    meta: RequestMeta = Depends(deps.get_request_meta),
    db: AsyncSession = Depends(deps.get_db_session),
) -> Response:
    try:
        await opportunities.soft_delete_opportunity(
            db, opportunity_id, actor_id=current_user.id, request_meta=meta
        )
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{opportunity_id}/unqualify",
    response_model=OpportunityDTO,
    summary="Flag an opportunity as unqualified",
)
async def unqualify_opportunity(
    opportunity_id: UUID,
    payload: UnqualifyRequest,
    current_user: User = Depends(deps.require_admin),
    meta: RequestMeta = Depends(deps.get_request_meta),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityDTO:
    try:
        return await opportunities.mark_unqualified(
            db,
            opportunity_id,
            reason=payload.reason,
            actor_id=current_user.id,
            request_meta=meta,
        )
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc


@router.post(
    "/{opportunity_id}/requalify",
    response_model=OpportunityDTO,
    summary="Clear the unqualified flag",
)
async def requalify_opportunity(
    opportunity_id: UUID,
    current_user: User = Depends(deps.require_admin),
    meta: RequestMeta = Depends(deps.get_request_meta),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OpportunityDTO:
    try:
        return await opportunities.requalify(
            db, opportunity_id, actor_id=current_user.id, request_meta=meta
        )
    except opportunities.OpportunityError as exc:
        raise service_http_exception(exc) from exc


@router.get(
    "/{opportunity_id}/history",
    response_model=HistoryResponse,
    summary="Opportunity history feed",
)
async def opportunity_history(
    opportunity_id: UUID,
    current_user: User = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db_session),
) -> HistoryResponse:
    return HistoryResponse(history=await audit_history.get_history(db, opportunity_id))
