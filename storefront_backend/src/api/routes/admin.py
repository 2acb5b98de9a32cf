"""
Admin routes: dashboard, order management and dropship fulfillment.

Every route requires an ADMIN or STAFF user.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.api.deps import get_email_client, require_admin
from src.api.schemas import (
    DashboardResponse,
    DropshipOrderView,
    FulfillmentDetailResponse,
    FulfillmentListResponse,
    IssueRequest,
    OrderListResponse,
    OrderResponse,
    PlacedRequest,
    StatusUpdateRequest,
    TrackingRequest,
)
from src.db.session import get_db
from src.integrations.email import EmailClient
from src.services import admin as admin_service
from src.services import fulfillment

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/dashboard", response_model=DashboardResponse, summary="Store overview")
def dashboard(db: Session = Depends(get_db)):
    return admin_service.dashboard_stats(db)


@router.get("/orders", response_model=OrderListResponse, summary="Search orders")
def list_orders(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    q: Optional[str] = Query(default=None, max_length=100, description="Order number or customer email"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return admin_service.list_orders(db, status=status_filter, q=q, page=page, page_size=page_size)


@router.patch("/orders/{order_number}/status", response_model=OrderResponse, summary="Override an order's status")
def update_order_status(order_number: str, body: StatusUpdateRequest, db: Session = Depends(get_db)):
    return OrderResponse.model_validate(admin_service.update_order_status(db, order_number, body.status))


@router.get("/fulfillment", response_model=FulfillmentListResponse, summary="Dropship orders")
def list_fulfillment(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return fulfillment.list_fulfillment_orders(db, status=status_filter, limit=limit, offset=offset)


@router.get("/fulfillment/stats", summary="Dropship order counts by status")
def fulfillment_stats(db: Session = Depends(get_db)):
    return fulfillment.fulfillment_stats(db)


@router.get("/fulfillment/attention", response_model=List[DropshipOrderView], summary="Orders needing action")
def orders_requiring_attention(db: Session = Depends(get_db)):
    return fulfillment.orders_requiring_attention(db)


@router.get("/fulfillment/{dropship_id}", response_model=FulfillmentDetailResponse, summary="Fulfillment detail")
def fulfillment_detail(dropship_id: uuid.UUID, db: Session = Depends(get_db)):
    dropship = fulfillment.get_fulfillment_details(db, dropship_id)
    return {
        "order": DropshipOrderView.model_validate(dropship),
        "validation": fulfillment.validate_fulfillment(db, dropship_id),
        "history": fulfillment.fulfillment_history(db, dropship_id),
        "supplier_order": fulfillment.prepare_supplier_order(db, dropship_id),
    }


@router.patch("/fulfillment/{dropship_id}/status", response_model=DropshipOrderView, summary="Change status")
def update_fulfillment_status(dropship_id: uuid.UUID, body: StatusUpdateRequest, db: Session = Depends(get_db)):
    return fulfillment.update_status(db, dropship_id, body.status)


@router.post("/fulfillment/{dropship_id}/tracking", response_model=DropshipOrderView, summary="Attach tracking")
def add_tracking(dropship_id: uuid.UUID, body: TrackingRequest, db: Session = Depends(get_db)):
    return fulfillment.add_tracking(db, dropship_id, body.tracking_number, body.carrier, body.tracking_url)


@router.post("/fulfillment/{dropship_id}/placed", response_model=DropshipOrderView, summary="Mark placed with supplier")
def mark_placed(dropship_id: uuid.UUID, body: PlacedRequest, db: Session = Depends(get_db)):
    return fulfillment.mark_placed(db, dropship_id, body.supplier_order_id)


@router.post("/fulfillment/{dropship_id}/shipped", response_model=DropshipOrderView, summary="Mark shipped")
def mark_shipped(
    dropship_id: uuid.UUID,
    body: TrackingRequest,
    db: Session = Depends(get_db),
    email_client: EmailClient = Depends(get_email_client),
):
    return fulfillment.mark_shipped(
        db, dropship_id, body.tracking_number, body.carrier, body.tracking_url, email_client=email_client
    )


@router.post("/fulfillment/{dropship_id}/delivered", response_model=DropshipOrderView, summary="Mark delivered")
def mark_delivered(dropship_id: uuid.UUID, db: Session = Depends(get_db)):
    return fulfillment.mark_delivered(db, dropship_id)


@router.post("/fulfillment/{dropship_id}/issue", response_model=DropshipOrderView, summary="Report a problem")
def report_issue(
    dropship_id: uuid.UUID,
    body: IssueRequest,
    db: Session = Depends(get_db),
    email_client: EmailClient = Depends(get_email_client),
):
    return fulfillment.report_issue(db, dropship_id, body.issue, email_client=email_client)
