import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sparks.models.notification import Notification

logger = logging.getLogger(__name__)

APPOINTMENT_NOTIFICATION = 'APPOINTMENT'


@dataclass(frozen=True)
class OutgoingNotification:
    receiver_id: int
    title: str
    message: str
    sender_id: int | None = None
    type: str = APPOINTMENT_NOTIFICATION
    is_urgent: bool = False


class NotificationDispatcher:
    """Writes in-app notification rows.

    Delivery is best effort: failures are logged and never raised, so callers
    can fire after their own transaction has committed.
    """

    def dispatch(self, db: Session, notifications: list[OutgoingNotification]) -> int:
        if not notifications:
            return 0

        try:
            db.add_all(
                [
                    Notification(
                        sender_id=item.sender_id,
                        receiver_id=item.receiver_id,
                        type=item.type,
                        title=item.title,
                        message=item.message,
                        is_read=False,
                        is_urgent=item.is_urgent,
                    )
                    for item in notifications
                ]
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception('Failed to create %d notification(s)', len(notifications))
            return 0

        return len(notifications)

    def session_booked(
        self,
        db: Session,
        *,
        booked_by_user_id: int,
        therapist_user_id: int,
        patient_name: str,
        scheduled_label: str,
    ) -> int:
        return self.dispatch(
            db,
            [
                OutgoingNotification(
                    sender_id=booked_by_user_id,
                    receiver_id=therapist_user_id,
                    title='New Session Booked',
                    message=f'New therapy session scheduled for {patient_name} on {scheduled_label}',
                ),
                OutgoingNotification(
                    receiver_id=booked_by_user_id,
                    title='Session Confirmation',
                    message=f'Your session booking for {patient_name} has been confirmed for {scheduled_label}',
                ),
            ],
        )
