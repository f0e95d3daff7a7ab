"""Service Request API endpoints."""
from fastapi import APIRouter, status

from aquarent.api.deps import DB, CurrentActor
from aquarent.schemas.service_request import (
    ServiceRequestCreate,
    ServiceRequestUpdate,
    ServiceFeedback,
    ServiceRequestResponse,
)
from aquarent.services.service_request_service import ServiceRequestService

router = APIRouter(tags=["Service Requests"])


@router.post("", response_model=ServiceRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_service_request(data: ServiceRequestCreate, db: DB, actor: CurrentActor):
    """Request a visit for one of your active subscriptions."""
    return await ServiceRequestService(db).create_service_request(actor, data)


@router.get("/{request_id}", response_model=ServiceRequestResponse)
async def get_service_request(request_id: int, db: DB, actor: CurrentActor):
    return await ServiceRequestService(db).get_service_request(request_id, actor)


@router.put("/{request_id}", response_model=ServiceRequestResponse)
async def update_service_request(
    request_id: int, data: ServiceRequestUpdate, db: DB, actor: CurrentActor
):
    """
    Update status, schedule, notes or agent.
    Customers may only cancel a pending request.
    """
    return await ServiceRequestService(db).update_service_request(request_id, actor, data)


@router.post("/{request_id}/cancel", response_model=ServiceRequestResponse)
async def cancel_service_request(request_id: int, db: DB, actor: CurrentActor):
    return await ServiceRequestService(db).cancel_service_request(request_id, actor)


@router.post("/{request_id}/feedback", response_model=ServiceRequestResponse)
async def submit_service_feedback(
    request_id: int, data: ServiceFeedback, db: DB, actor: CurrentActor
):
    """Rate a completed visit."""
    return await ServiceRequestService(db).submit_feedback(
        request_id, actor, data.rating, data.feedback
    )
