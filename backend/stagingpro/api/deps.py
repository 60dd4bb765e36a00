"""Dependency providers shared by the routers, and the mapping from service
errors to HTTP responses."""

from contextlib import contextmanager
from functools import lru_cache
from typing import Optional

from fastapi import BackgroundTasks, Depends, Header, HTTPException, status

from stagingpro.config import Settings, get_settings
from stagingpro.services.dashboard import AccessDenied, DashboardController, InvalidInput, PlanInUse
from stagingpro.services.identity import AuthError, AuthSession, Role, User, decode_auth_token, resolve_user
from stagingpro.services.lifecycle import QuoteRejected, TransitionError
from stagingpro.services.notifications import Notifier
from stagingpro.services.ordering import OrderingFlow, PlanUnavailable
from stagingpro.services.payments import CheckoutClient, CheckoutError
from stagingpro.services.repository import (
    RecordNotFound,
    ReferentialIntegrityError,
    SchemaMissingError,
    StudioData,
    WriteError,
)
from stagingpro.services.storage import MediaStore, UploadError
from stagingpro.services.vision import RoomAnalyzer
from stagingpro.utils.images import InvalidImageData


@lru_cache()
def get_data() -> StudioData:
    return StudioData(storage=MediaStore(get_settings()))


def get_app_settings() -> Settings:
    return get_settings()


def get_notifier(settings: Settings = Depends(get_app_settings)) -> Notifier:
    return Notifier.from_settings(settings)


def get_checkout(settings: Settings = Depends(get_app_settings)) -> CheckoutClient:
    return CheckoutClient.from_settings(settings)


def get_analyzer(settings: Settings = Depends(get_app_settings)) -> RoomAnalyzer:
    return RoomAnalyzer.from_settings(settings)


def get_auth_session(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> AuthSession:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return decode_auth_token(authorization, settings)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


def get_current_user(
    auth_session: AuthSession = Depends(get_auth_session),
    data: StudioData = Depends(get_data),
    settings: Settings = Depends(get_app_settings),
) -> User:
    return resolve_user(auth_session, data, settings)


def require_staff(user: User = Depends(get_current_user)) -> User:
    if not user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Studio access required")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def get_dashboard(
    background_tasks: BackgroundTasks,
    data: StudioData = Depends(get_data),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
) -> DashboardController:
    return DashboardController(data, notifier, settings, defer=background_tasks.add_task)


def get_ordering(
    background_tasks: BackgroundTasks,
    data: StudioData = Depends(get_data),
    checkout: CheckoutClient = Depends(get_checkout),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
) -> OrderingFlow:
    return OrderingFlow(data, checkout, notifier, settings, defer=background_tasks.add_task)


@contextmanager
def service_errors():
    """Translate service exceptions raised inside the block into HTTPException."""
    try:
        yield
    except AccessDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except RecordNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SchemaMissingError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except (PlanInUse, ReferentialIntegrityError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (QuoteRejected, InvalidInput, PlanUnavailable, InvalidImageData) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except TransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (UploadError, CheckoutError) as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except WriteError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
