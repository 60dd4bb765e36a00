from typing import Any, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from stagingpro.api.deps import get_dashboard, require_admin, require_staff, service_errors
from stagingpro.models.submission import submission_to_public
from stagingpro.services.dashboard import DashboardController, DashboardFilter
from stagingpro.services.identity import User

router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AssignBody(_CamelModel):
    editor_id: Optional[str] = None


class DeliverBody(_CamelModel):
    slot: str
    file: str


class RejectBody(_CamelModel):
    notes: Optional[str] = None


class QuoteBody(_CamelModel):
    amount: Any


@router.get("")
def dashboard_view(
    filter: DashboardFilter = DashboardFilter.ALL,
    only_mine: Optional[bool] = None,
    user: User = Depends(require_staff),
    controller: DashboardController = Depends(get_dashboard),
):
    with service_errors():
        view = controller.build_view(user, filter, only_mine)
    return view.to_json()


@router.post("/submissions/{submission_id}/assign")
def assign_editor(submission_id: str, body: AssignBody, user: User = Depends(require_staff), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        sub = controller.assign(user, submission_id, body.editor_id)
    return submission_to_public(sub)


@router.post("/submissions/{submission_id}/deliver")
def deliver_result(submission_id: str, body: DeliverBody, user: User = Depends(require_staff), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        sub = controller.deliver(user, submission_id, body.slot, body.file)
    return submission_to_public(sub)


@router.post("/submissions/{submission_id}/approve")
def approve_submission(submission_id: str, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        sub = controller.approve(user, submission_id)
    return submission_to_public(sub)


@router.post("/submissions/{submission_id}/reject")
def reject_submission(submission_id: str, body: RejectBody, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        sub = controller.reject(user, submission_id, body.notes)
    return submission_to_public(sub)


@router.post("/submissions/{submission_id}/quote")
def set_quote(submission_id: str, body: QuoteBody, user: User = Depends(require_staff), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        sub = controller.set_quote(user, submission_id, body.amount)
    return submission_to_public(sub)


@router.delete("/submissions/{submission_id}", status_code=204)
def delete_submission(submission_id: str, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        controller.delete_submission(user, submission_id)
    return Response(status_code=204)
