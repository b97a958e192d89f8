# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from storefront.api.deps import get_payment_service
from storefront.domain.schemas import CheckoutIn, CheckoutOut, PaymentOut, RazorpayVerifyIn, WebhookAck
from storefront.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/checkout", response_model=CheckoutOut, status_code=201)
def create_checkout(payload: CheckoutIn, svc: PaymentService = Depends(get_payment_service)):
    return svc.create_checkout(payload)


@router.post("/razorpay/verify", response_model=PaymentOut)
def verify_razorpay(payload: RazorpayVerifyIn, svc: PaymentService = Depends(get_payment_service)):
    return svc.verify_razorpay_payment(
        payload.razorpay_order_id,
        payload.razorpay_payment_id,
        payload.razorpay_signature,
    )


# webhooks read the raw body for the signature check, the service call still goes to the threadpool
@router.post("/razorpay/webhook", response_model=WebhookAck)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None),
    svc: PaymentService = Depends(get_payment_service),
):
    raw_body = await request.body()
    return await run_in_threadpool(svc.handle_razorpay_webhook, raw_body, x_razorpay_signature)


@router.post("/polar/webhook", response_model=WebhookAck)
async def polar_webhook(request: Request, svc: PaymentService = Depends(get_payment_service)):
    raw_body = await request.body()
    return await run_in_threadpool(svc.handle_polar_webhook, raw_body, request.headers)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: int, svc: PaymentService = Depends(get_payment_service)):
    return svc.get_payment(payment_id)
