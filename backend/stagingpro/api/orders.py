from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from stagingpro.api.deps import get_current_user, get_ordering, service_errors
from stagingpro.models.submission import OrderCreate, submission_to_public
from stagingpro.services.identity import User
from stagingpro.services.ordering import OrderingFlow

router = APIRouter()


class PaymentReturn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: Optional[str] = None


@router.get("")
def list_my_orders(user: User = Depends(get_current_user), flow: OrderingFlow = Depends(get_ordering)):
    """The caller's own orders, unpaid ones excluded."""
    return flow.list_orders(user)


@router.post("", status_code=201)
def place_order(order: OrderCreate, user: User = Depends(get_current_user), flow: OrderingFlow = Depends(get_ordering)):
    with service_errors():
        placed = flow.place_order(user, order)
    return placed.to_json()


@router.post("/{order_id}/reconcile")
def reconcile_payment(order_id: str, body: PaymentReturn, user: User = Depends(get_current_user), flow: OrderingFlow = Depends(get_ordering)):
    """Called on the return from checkout; repeating it is harmless."""
    with service_errors():
        sub = flow.reconcile_payment(user, order_id, body.session_id)
    return submission_to_public(sub)


@router.post("/{order_id}/pay-quote")
def pay_quote(order_id: str, user: User = Depends(get_current_user), flow: OrderingFlow = Depends(get_ordering)):
    with service_errors():
        url = flow.pay_quote(user, order_id)
    return {"url": url}
