"""Staff dashboard: filtered views over the scoped submission set and the
actions staff take on an order, plus plan, showcase and roster management."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from stagingpro.config import Settings
from stagingpro.models.message import Message
from stagingpro.models.plan import Plan, plan_from_public, plan_to_public
from stagingpro.models.staff import ArchiveProject, ArchiveProjectWrite, Editor
from stagingpro.models.submission import Submission, SubmissionStatus, submission_to_public
from stagingpro.services import lifecycle
from stagingpro.services.identity import Role, User, in_scope, load_scoped_submissions, normalize_email
from stagingpro.services.notifications import Notifier
from stagingpro.services.repository import RecordNotFound, ReferentialIntegrityError, StudioData, WriteError, new_editor_id
from stagingpro.utils.clock import format_ms, now_ms

logger = logging.getLogger(__name__)

UNASSIGNED = "Unassigned"


class DashboardFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    PROCESSING = "processing"
    REVIEWING = "reviewing"
    COMPLETED = "completed"
    COMMENTS = "comments"
    ARCHIVE = "archive"
    PLANS = "plans"


STATUS_FILTERS = {
    DashboardFilter.PENDING,
    DashboardFilter.PROCESSING,
    DashboardFilter.REVIEWING,
    DashboardFilter.COMPLETED,
}


class AccessDenied(Exception):
    pass


class PlanInUse(WriteError):
    pass


class InvalidInput(ValueError):
    pass


@dataclass
class ChatInfo:
    count: int = 0
    last_message: Optional[Message] = None
    has_new: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "lastMessage": self.last_message.model_dump() if self.last_message else None,
            "hasNew": self.has_new,
        }


def is_from_client(message: Message) -> bool:
    return message.sender_role == Role.USER.value


def is_from_studio(message: Message) -> bool:
    return message.sender_role in (Role.ADMIN.value, Role.EDITOR.value)


def chat_summary(
    messages: Iterable[Message],
    watermarks: Dict[str, int],
    counts_as_new: Callable[[Message], bool] = is_from_client,
) -> Dict[str, ChatInfo]:
    """Per-submission message count, latest message and unread flag."""
    info: Dict[str, ChatInfo] = {}
    for msg in messages:
        if not msg.submission_id:
            continue
        entry = info.setdefault(msg.submission_id, ChatInfo())
        entry.count += 1
        if entry.last_message is None or msg.timestamp > entry.last_message.timestamp:
            entry.last_message = msg
        if counts_as_new(msg) and msg.timestamp > watermarks.get(msg.submission_id, 0):
            entry.has_new = True
    return info


def dashboard_stats(submissions: Iterable[Submission]) -> Dict[str, int]:
    listed = [s for s in submissions if lifecycle.is_listed(s)]
    return {
        "total": len(listed),
        "pending": sum(1 for s in listed if s.status == SubmissionStatus.PENDING.value),
        "processing": sum(1 for s in listed if s.status == SubmissionStatus.PROCESSING.value),
        "completed": sum(1 for s in listed if s.status == SubmissionStatus.COMPLETED.value),
    }


def filter_submissions(
    submissions: Iterable[Submission],
    user: User,
    status_filter: DashboardFilter = DashboardFilter.ALL,
    only_mine: bool = False,
    chat: Optional[Dict[str, ChatInfo]] = None,
) -> List[Submission]:
    chat = chat or {}
    result = [s for s in submissions if lifecycle.is_listed(s)]
    if only_mine and user.editor_record_id:
        result = [s for s in result if str(s.assigned_editor_id) == str(user.editor_record_id)]

    if status_filter == DashboardFilter.COMMENTS:
        result = [s for s in result if chat.get(s.id) and chat[s.id].count > 0]
        result.sort(key=lambda s: chat[s.id].last_message.timestamp if chat[s.id].last_message else 0, reverse=True)
    elif status_filter in STATUS_FILTERS:
        result = [s for s in result if s.status == status_filter.value]
    return result


@dataclass
class DashboardView:
    mode: str
    stats: Dict[str, int]
    submissions: List[Dict[str, Any]] = field(default_factory=list)
    archive: List[Dict[str, Any]] = field(default_factory=list)
    plans: List[Dict[str, Any]] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "stats": self.stats,
            "submissions": self.submissions,
            "archive": self.archive,
            "plans": self.plans,
        }


def _run_now(fn, *args, **kwargs):
    return fn(*args, **kwargs)


class DashboardController:
    """Staff-side operations.

    `defer` schedules side effects (emails) after the write has been
    committed; routes pass `BackgroundTasks.add_task`, tests may run them
    inline.
    """

    def __init__(self, data: StudioData, notifier: Notifier, settings: Settings, defer: Callable = _run_now):
        self.data = data
        self.notifier = notifier
        self.settings = settings
        self.defer = defer

    # -- helpers -------------------------------------------------------------

    def _plans(self) -> Dict[str, Plan]:
        return {p.id: p for p in self.data.plans.fetch_all()}

    def _plan_title(self, plan_id: str, default: str = "Staging Service") -> str:
        plan = self.data.plans.get(plan_id)
        return plan.title if plan else default

    def _require_staff(self, user: User) -> None:
        if not user.is_staff:
            raise AccessDenied("studio access required")

    def _require_admin(self, user: User) -> None:
        if user.role != Role.ADMIN:
            raise AccessDenied("admin access required")

    def get_submission(self, user: User, submission_id: str) -> Submission:
        self._require_staff(user)
        sub = self.data.submissions.get(submission_id)
        if sub is None:
            raise RecordNotFound(f"submission {submission_id} not found")
        if not in_scope(user)(submission_to_public(sub)):
            raise AccessDenied(f"submission {submission_id} is not assigned to you")
        return sub

    def commit(self, sub: Submission, updates: Dict[str, Any]) -> Submission:
        """Write lifecycle updates and fire the delivery email when one is due."""
        row = self.data.submissions.update(sub.id, updates)
        if lifecycle.delivery_notification_due(updates, row) and row.owner_email:
            self.defer(
                self.notifier.delivery_ready,
                row.owner_email,
                row.id,
                self._plan_title(row.plan),
                format_ms(row.timestamp),
                lifecycle.final_result_url(row) or "",
            )
        return row

    # -- views ---------------------------------------------------------------

    def build_view(self, user: User, status_filter: DashboardFilter = DashboardFilter.ALL, only_mine: Optional[bool] = None) -> DashboardView:
        self._require_staff(user)
        if only_mine is None:
            only_mine = user.role == Role.EDITOR
        submissions = list(load_scoped_submissions(self.data, user))
        stats = dashboard_stats(submissions)

        if status_filter == DashboardFilter.ARCHIVE:
            return DashboardView(mode="archive", stats=stats, archive=[a.model_dump() for a in self.data.archive.fetch_all()])
        if status_filter == DashboardFilter.PLANS:
            return DashboardView(mode="plans", stats=stats, plans=[plan_to_public(p) for p in self.data.plans.fetch_all()])

        messages = self.data.messages.fetch_for_submissions([s.id for s in submissions])
        chat = chat_summary(messages, self.data.receipts.watermarks(user.id), is_from_client)
        editors = {e.id: e.name for e in self.data.editors.fetch_all()}
        business_days = self.settings.delivery_business_days

        rows = []
        for sub in filter_submissions(submissions, user, status_filter, only_mine, chat):
            rows.append(submission_to_public(
                sub,
                estimated_delivery=lifecycle.estimated_delivery_date(sub.timestamp, business_days).isoformat(),
                assignedEditorName=editors.get(sub.assigned_editor_id, UNASSIGNED) if sub.assigned_editor_id else UNASSIGNED,
                chat=chat.get(sub.id, ChatInfo()).to_json(),
            ))
        mode = "comments" if status_filter == DashboardFilter.COMMENTS else "orders"
        return DashboardView(mode=mode, stats=stats, submissions=rows)

    # -- order actions -------------------------------------------------------

    def assign(self, user: User, submission_id: str, editor_id: Optional[str]) -> Submission:
        self._require_staff(user)
        sub = self.get_submission(user, submission_id)
        if editor_id and self.data.editors.get(editor_id) is None:
            raise InvalidInput(f"unknown editor {editor_id}")
        return self.commit(sub, lifecycle.assign(sub, editor_id))

    def deliver(self, user: User, submission_id: str, slot: str, data_url: str) -> Submission:
        sub = self.get_submission(user, submission_id)
        try:
            slot = lifecycle.DeliverySlot(slot)
        except ValueError:
            raise lifecycle.TransitionError(f"unknown delivery slot '{slot}'")
        # validate before uploading so a refused delivery leaves nothing behind
        lifecycle.deliver(sub, slot, "pending-upload")
        url = self.data.storage.upload(lifecycle.result_path(sub, slot), data_url)
        return self.commit(sub, lifecycle.deliver(sub, slot, url))

    def approve(self, user: User, submission_id: str) -> Submission:
        self._require_admin(user)
        sub = self.get_submission(user, submission_id)
        return self.commit(sub, lifecycle.approve(sub))

    def reject(self, user: User, submission_id: str, notes: Optional[str] = None) -> Submission:
        self._require_admin(user)
        sub = self.get_submission(user, submission_id)
        return self.commit(sub, lifecycle.reject(sub, notes))

    def set_quote(self, user: User, submission_id: str, raw_amount: Any) -> Submission:
        sub = self.get_submission(user, submission_id)
        updates = lifecycle.set_quote(sub, raw_amount)
        row = self.data.submissions.update(sub.id, updates)
        if row.owner_email:
            self.defer(
                self.notifier.quote_ready,
                row.owner_email,
                row.id,
                self._plan_title(row.plan, "3D Modeling"),
                lifecycle.format_amount(row.quoted_amount),
                row.data_url,
            )
        return row

    def delete_submission(self, user: User, submission_id: str) -> None:
        self._require_admin(user)
        self.data.submissions.delete(submission_id)

    # -- plans ---------------------------------------------------------------

    def save_plan(self, user: User, payload: Dict[str, Any], editing_id: Optional[str] = None) -> Dict[str, Any]:
        self._require_admin(user)
        columns = plan_from_public(payload)
        if editing_id:
            columns.pop("id", None)
            row = self.data.plans.update(editing_id, columns)
        else:
            if not columns.get("id") or not columns.get("title"):
                raise InvalidInput("plan id and title are required")
            columns.setdefault("is_visible", True)
            row = self.data.plans.insert(Plan(**columns))
        return plan_to_public(row)

    def toggle_plan_visibility(self, user: User, plan_id: str) -> Dict[str, Any]:
        self._require_admin(user)
        plan = self.data.plans.get(plan_id)
        if plan is None:
            raise RecordNotFound(f"plan {plan_id} not found")
        row = self.data.plans.update(plan_id, {"is_visible": plan.is_visible is False})
        return plan_to_public(row)

    def delete_plan(self, user: User, plan_id: str) -> None:
        self._require_admin(user)
        try:
            self.data.plans.delete(plan_id)
        except ReferentialIntegrityError as e:
            logger.info("Plan %s still referenced by orders: %s", plan_id, e)
            raise PlanInUse(
                "Cannot delete plan: it is linked to existing order history. "
                "Use the visibility toggle to hide it from clients instead."
            )

    # -- showcase archive ----------------------------------------------------

    def save_archive(self, user: User, form: ArchiveProjectWrite, editing_id: Optional[str] = None) -> ArchiveProject:
        self._require_admin(user)
        values = form.model_dump(exclude={"before_image", "after_image"})
        stamp = now_ms()
        if form.before_image:
            values["beforeurl"] = self.data.storage.upload(f"archive/{stamp}_before.jpg", form.before_image)
        if form.after_image:
            values["afterurl"] = self.data.storage.upload(f"archive/{stamp}_after.jpg", form.after_image)

        if editing_id:
            existing = self.data.archive.get(editing_id)
            if existing is None:
                raise RecordNotFound(f"archive project {editing_id} not found")
            updates = {k: v for k, v in values.items() if v is not None}
            updates["timestamp"] = stamp
            return self.data.archive.update(editing_id, updates)

        if not values.get("title") or not values.get("afterurl") or not values.get("category"):
            raise InvalidInput("Title, Category and After Image are required.")
        return self.data.archive.insert(ArchiveProject(id=f"arch_{stamp}", timestamp=stamp, **values))

    def delete_archive(self, user: User, archive_id: str) -> None:
        self._require_admin(user)
        self.data.archive.delete(archive_id)

    # -- editor roster -------------------------------------------------------

    def add_editor(self, user: User, name: str, specialty: str, email: Optional[str] = None) -> Editor:
        self._require_admin(user)
        if not name or not specialty:
            raise InvalidInput("name and specialty are required")
        editor = Editor(id=new_editor_id(), name=name.strip(), specialty=specialty.strip(), email=normalize_email(email) or None)
        return self.data.editors.insert(editor)

    def delete_editor(self, user: User, editor_id: str) -> None:
        self._require_admin(user)
        # assignments keep the id; views render it as Unassigned
        self.data.editors.delete(editor_id)

    def list_editors(self, user: User) -> List[Editor]:
        self._require_staff(user)
        return list(self.data.editors.fetch_all())
