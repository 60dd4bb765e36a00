from fastapi import APIRouter, Depends, Response

from stagingpro.api.deps import get_dashboard, get_data, require_admin, service_errors
from stagingpro.models.plan import PlanPublic, PlanUpdate, plan_to_public
from stagingpro.services.dashboard import DashboardController
from stagingpro.services.identity import User
from stagingpro.services.repository import StudioData

router = APIRouter()


@router.get("")
def list_plans(data: StudioData = Depends(get_data)):
    """Plans offered to clients, in display order. Hidden plans are left out."""
    return [p for p in (plan_to_public(plan) for plan in data.plans.fetch_all()) if p["isVisible"]]


@router.post("", status_code=201)
def create_plan(body: PlanPublic, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        return controller.save_plan(user, body.model_dump())


@router.patch("/{plan_id}")
def update_plan(plan_id: str, body: PlanUpdate, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        return controller.save_plan(user, body.model_dump(exclude_unset=True), editing_id=plan_id)


@router.post("/{plan_id}/toggle-visibility")
def toggle_plan_visibility(plan_id: str, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        return controller.toggle_plan_visibility(user, plan_id)


@router.delete("/{plan_id}", status_code=204)
def delete_plan(plan_id: str, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        controller.delete_plan(user, plan_id)
    return Response(status_code=204)
