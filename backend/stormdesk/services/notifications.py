"""
In-app notifications, optionally mirrored to email.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models.db_models import MembershipDB, NotificationDB, OrgDB, UserDB
from .email import Brand, notification_email, safe_send_email
from .leads import leads_due_for_follow_up
from .tenancy import TenantScope

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, db_session: Session, org_id: str):
        self.db = db_session
        self.org_id = org_id
        self.scope = TenantScope(db_session, org_id)

    def create(
        self,
        user_id: str,
        title: str,
        body: Optional[str] = None,
        link: Optional[str] = None,
        kind: str = "info",
        send_email: bool = False,
        commit: bool = True,
    ) -> NotificationDB:
        notification = self.scope.add(NotificationDB(
            user_id=user_id, title=title, body=body, link=link, kind=kind,
        ))
        if send_email:
            user = self.db.query(UserDB).filter(UserDB.id == user_id).first()
            if user is not None:
                org = self.db.query(OrgDB).filter(OrgDB.id == self.org_id).first()
                content = notification_email(title, body, link, Brand.from_org(org))
                safe_send_email(user.email, **content)
        if commit:
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def notify_org_members(
        self,
        title: str,
        body: Optional[str] = None,
        link: Optional[str] = None,
        kind: str = "info",
        roles: Optional[List[str]] = None,
        exclude_user_id: Optional[str] = None,
    ) -> int:
        """Notify every member of the org (optionally only some roles). Returns the count."""
        query = self.db.query(MembershipDB).filter(MembershipDB.org_id == self.org_id)
        if roles:
            query = query.filter(MembershipDB.role.in_(roles))
        count = 0
        for membership in query.all():
            if membership.user_id == exclude_user_id:
                continue
            self.create(membership.user_id, title, body, link, kind, commit=False)
            count += 1
        self.db.commit()
        return count

    def list(self, user_id: str, unread_only: bool = False, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        query = self.scope.query(NotificationDB).filter(NotificationDB.user_id == user_id)
        if unread_only:
            query = query.filter(NotificationDB.is_read.is_(False))
        return TenantScope.paginate(query.order_by(NotificationDB.created_at.desc()), limit, offset)

    def unread_count(self, user_id: str) -> int:
        return self.scope.query(NotificationDB).filter(
            NotificationDB.user_id == user_id,
            NotificationDB.is_read.is_(False),
        ).count()

    def mark_read(self, user_id: str, notification_id: str) -> NotificationDB:
        notification = self.scope.get(NotificationDB, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            self.db.commit()
        return notification

    def mark_all_read(self, user_id: str) -> int:
        now = datetime.utcnow()
        updated = self.scope.query(NotificationDB).filter(
            NotificationDB.user_id == user_id,
            NotificationDB.is_read.is_(False),
        ).update({"is_read": True, "read_at": now}, synchronize_session=False)
        self.db.commit()
        return updated


def send_follow_up_reminders(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Notify the assigned rep for every lead whose follow-up date has passed."""
    now = now or datetime.utcnow()
    leads = leads_due_for_follow_up(db, now)
    for lead in leads:
        NotificationService(db, lead.org_id).create(
            lead.assigned_to,
            title=f"Follow up: {lead.title}",
            body=f"Follow-up for lead '{lead.title}' was due {lead.follow_up_date:%b %d, %Y}.",
            link=f"/leads/{lead.id}",
            kind="lead_follow_up",
            send_email=True,
            commit=False,
        )
        lead.reminder_sent_at = now
    db.commit()
    logger.info(f"Sent {len(leads)} lead follow-up reminders")
    return {"task": "lead_follow_ups", "run_at": now.isoformat(), "reminders_sent": len(leads)}
