from fastapi import APIRouter, Depends, Response

from stagingpro.api.deps import get_dashboard, get_data, require_admin, service_errors
from stagingpro.models.staff import ArchiveProjectWrite
from stagingpro.services.dashboard import DashboardController
from stagingpro.services.identity import User
from stagingpro.services.repository import StudioData

router = APIRouter()


@router.get("")
def list_archive(data: StudioData = Depends(get_data)):
    """Public showcase, newest first."""
    return [item.model_dump() for item in data.archive.fetch_all()]


@router.post("", status_code=201)
def create_archive_project(body: ArchiveProjectWrite, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        return controller.save_archive(user, body).model_dump()


@router.put("/{archive_id}")
def update_archive_project(archive_id: str, body: ArchiveProjectWrite, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        return controller.save_archive(user, body, editing_id=archive_id).model_dump()


@router.delete("/{archive_id}", status_code=204)
def delete_archive_project(archive_id: str, user: User = Depends(require_admin), controller: DashboardController = Depends(get_dashboard)):
    with service_errors():
        controller.delete_archive(user, archive_id)
    return Response(status_code=204)
