from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["Health"])


@router.get("/", response_class=PlainTextResponse)
def root():
    return "Stripe Service API"


@router.get("/health")
def health():
    return {"status": "ok", "service": "stripe-service"}
