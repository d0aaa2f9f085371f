from datetime import datetime
from sqlalchemy import select, update, or_, and_, cast, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session

from cedo.models.notification import (
    Notification, NotificationTargetType, NotificationStatusType
)


# statuses a recipient still sees in the inbox
VISIBLE_STATUSES = (
    NotificationStatusType.PENDING,
    NotificationStatusType.DELIVERED,
    NotificationStatusType.READ,
)
UNREAD_STATUSES = (
    NotificationStatusType.PENDING,
    NotificationStatusType.DELIVERED,
)


class NotificationRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.flush()
        return notification

    def get_by_id(self, notification_id: int) -> Notification | None:
        stmt = select(Notification).where(Notification.id == notification_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_dedup_key(self, dedup_key: str) -> Notification | None:
        stmt = select(Notification).where(Notification.dedup_key == dedup_key)
        return self.db.execute(stmt).scalar_one_or_none()

    def _excludes(self, user_id: int):
        """excluded_user_ids contains user_id (jsonb @> on PostgreSQL, json_each elsewhere)"""
        if self.db.get_bind().dialect.name == "postgresql":
            return cast(Notification.excluded_user_ids, JSONB).contains([user_id])
        members = func.json_each(Notification.excluded_user_ids).table_valued("value")
        return select(members.c.value).where(members.c.value == user_id).exists()

    def _visible_to(self, user_id: int, role: str | None, now: datetime, unread_only: bool) -> list:
        """
        Filter for one recipient's inbox
        - direct: target_type=user and target_user_id matches
        - role: target_type=role and target_role matches
        - broadcast: target_type=all
        - minus rows that exclude the user or are past expires_at
        """
        targets = [
            and_(
                Notification.target_type == NotificationTargetType.USER,
                Notification.target_user_id == user_id,
            ),
            Notification.target_type == NotificationTargetType.ALL,
        ]
        if role:
            targets.append(
                and_(
                    Notification.target_type == NotificationTargetType.ROLE,
                    Notification.target_role == role,
                )
            )
        return [
            or_(*targets),
            ~self._excludes(user_id),
            Notification.status.in_(UNREAD_STATUSES if unread_only else VISIBLE_STATUSES),
            or_(Notification.expires_at.is_(None), Notification.expires_at > now),
        ]

    def list_visible(
        self,
        user_id: int,
        role: str | None,
        now: datetime,
        unread_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(*self._visible_to(user_id, role, now, unread_only))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars())

    def count_visible(self, user_id: int, role: str | None, now: datetime, unread_only: bool = False) -> int:
        stmt = (
            select(func.count())
            .select_from(Notification)
            .where(*self._visible_to(user_id, role, now, unread_only))
        )
        return self.db.execute(stmt).scalar_one()

    def visible_ids(self, user_id: int, role: str | None, now: datetime, unread_only: bool = False) -> list[int]:
        stmt = select(Notification.id).where(*self._visible_to(user_id, role, now, unread_only))
        return list(self.db.execute(stmt).scalars())

    def mark_read(self, notification_ids: list[int], read_at: datetime) -> int:
        if not notification_ids:
            return 0
        stmt = (
            update(Notification)
            .where(
                Notification.id.in_(notification_ids),
                Notification.status.in_(UNREAD_STATUSES),
            )
            .values(
                status=NotificationStatusType.READ,
                read_at=read_at,
                updated_at=read_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount

    def mark_delivered(self, notification_ids: list[int], delivered_at: datetime) -> int:
        """pending -> delivered once the external channel accepted the e-mail"""
        if not notification_ids:
            return 0
        stmt = (
            update(Notification)
            .where(
                Notification.id.in_(notification_ids),
                Notification.status == NotificationStatusType.PENDING,
            )
            .values(
                status=NotificationStatusType.DELIVERED,
                delivered_at=delivered_at,
                updated_at=delivered_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount

    def set_status(
        self,
        notification: Notification,
        status: NotificationStatusType,
        updated_at: datetime,
    ) -> Notification:
        notification.status = status
        notification.updated_at = updated_at
        self.db.flush()
        return notification

    def expire_stale(self, now: datetime) -> int:
        stmt = (
            update(Notification)
            .where(
                Notification.expires_at.is_not(None),
                Notification.expires_at < now,
                Notification.status.in_(VISIBLE_STATUSES),
            )
            .values(status=NotificationStatusType.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount
