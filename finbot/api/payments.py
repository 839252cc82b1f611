"""
Payment provider webhook route.

- POST /api/webhooks/payment: entitlement changes for purchases, renewals,
  cancellations and refunds. Any other method answers 405.
"""
from json import JSONDecodeError

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from finbot.features.payments.service import PaymentWebhookHandler, build_handler


router = APIRouter(prefix="/webhooks", tags=["payments"])


def get_payment_handler() -> PaymentWebhookHandler:
    return build_handler()


@router.api_route("/payment", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def payment_webhook(req: Request, handler: PaymentWebhookHandler = Depends(get_payment_handler)):
    body = None
    if req.method == "POST":
        try:
            body = await req.json()
        except (JSONDecodeError, UnicodeDecodeError):
            body = None

    result = await handler.handle(req.method, body)
    return JSONResponse(status_code=result.status_code, content=result.payload)
