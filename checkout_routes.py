from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import RedirectResponse
from pymongo.database import Database
from starlette.concurrency import run_in_threadpool

from cart import CartStore
from cart_routes import get_cart_store
from checkout import create_payment_session, get_order_by_session, place_order
from database import get_db
from payments import get_payment_gateway
from schemas import CheckoutForm, PaymentSessionRequest, PaymentSessionResponse
from webhook import handle_event

router = APIRouter(prefix="/api", tags=["checkout"])


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


@router.post("/checkout")
def checkout(form: CheckoutForm,
             request: Request,
             store: CartStore = Depends(get_cart_store),
             db: Database = Depends(get_db),
             gateway=Depends(get_payment_gateway)):
    result = place_order(db, gateway, store.get_cart(), form, _base_url(request))
    return RedirectResponse(url=result.session.url, status_code=303)


@router.post("/create-checkout-session", response_model=PaymentSessionResponse)
def create_checkout_session(req: PaymentSessionRequest,
                            request: Request,
                            db: Database = Depends(get_db),
                            gateway=Depends(get_payment_gateway)):
    session = create_payment_session(db, gateway, req, base_url=_base_url(request))
    return {"id": session.id, "url": session.url}


@router.post("/webhook")
async def stripe_webhook(request: Request,
                         stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
                         db: Database = Depends(get_db),
                         gateway=Depends(get_payment_gateway)):
    payload = await request.body()
    event = gateway.verify_event(payload, stripe_signature)
    return await run_in_threadpool(handle_event, db, event)


@router.get("/orders/by-session/{session_id}")
def order_by_session(session_id: str,
                     store: CartStore = Depends(get_cart_store),
                     db: Database = Depends(get_db)):
    order = get_order_by_session(db, session_id)
    store.clear()
    return order
