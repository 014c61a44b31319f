from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from stripe_gateway import store
from stripe_gateway.auth import require_service_auth
from stripe_gateway.database import get_db
from stripe_gateway.schemas import StatsRequest

router = APIRouter(tags=["Status"], dependencies=[Depends(require_service_auth)])


@router.get("/status/{payment_id}")
def payment_status(payment_id: str, db: Session = Depends(get_db)):
    payment = store.get_payment(db, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")

    return {
        "payment": payment.as_dict(),
        "events": store.events_for_payment_intent(db, payment.stripe_payment_intent_id),
    }


@router.get("/status/by-org/{org_id}")
def payments_by_org(org_id: str, db: Session = Depends(get_db)):
    return {"payments": [p.as_dict() for p in store.payments_for_org(db, org_id)]}


@router.get("/status/by-run/{run_id}")
def payments_by_run(run_id: str, db: Session = Depends(get_db)):
    return {"payments": [p.as_dict() for p in store.payments_for_run(db, run_id)]}


@router.post("/stats")
def payment_stats(request: Optional[StatsRequest] = None, db: Session = Depends(get_db)):
    request = request or StatsRequest()
    return store.payment_stats(
        db,
        org_id=request.clerk_org_id,
        brand_id=request.brand_id,
        app_id=request.app_id,
        campaign_id=request.campaign_id,
        run_ids=request.run_ids,
    )
