from fastapi import APIRouter, Depends, Response

from stagingpro.api.deps import get_dashboard, require_admin, require_staff, service_errors
from stagingpro.models.staff import EditorCreate
from stagingpro.services.dashboard import DashboardController
from stagingpro.services.identity import User

router = APIRouter()


@router.get("")
def list_editors(user: User = Depends(require_staff), controller: DashboardController = Depends(get_dashboard)):
    return [e.model_dump() for e in controller.list_editors(user)]


@router.post("", status_code=201)
def add_editor(body: EditorCreate, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        return controller.add_editor(user, body.name, body.specialty, body.email).model_dump()


@router.delete("/{editor_id}", status_code=204)
def delete_editor(editor_id: str, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        controller.delete_editor(user, editor_id)
    return Response(status_code=204)
