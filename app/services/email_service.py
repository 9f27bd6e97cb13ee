import logging
import smtplib
from email.mime.text import MIMEText

from app.core.config import settings
from app.models import Reservation

logger = logging.getLogger(__name__)


def _send_email_sync(to_email: str, subject: str, body: str) -> None:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return
    msg = MIMEText(body, "plain", "utf-8")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)


def build_booking_confirmation_body(reservation: Reservation) -> str:
    return (
        f"{reservation.name}様\n\n"
        f"{settings.clinic_name}のご予約が確定しました。\n\n"
        f"■予約日時\n{reservation.date} {reservation.start_time}〜{reservation.end_time}\n\n"
        f"■来院区分\n{reservation.visit_type.value}\n\n"
        f"■予約ID\n{reservation.id}\n\n"
        "ご予約の変更・キャンセルはお電話にてご連絡ください。\n"
    )


def build_admin_notification_body(reservation: Reservation) -> str:
    return (
        "管理者 様\n\n新しい予約が入りました。\n\n"
        "--------------------------------------------------\n"
        f"■予約日時\n{reservation.date} {reservation.start_time}\n\n"
        f"■来院区分\n{reservation.visit_type.value}\n\n"
        f"■お名前\n{reservation.name} 様\n\n"
        f"■電話番号\n{reservation.phone}\n"
        "--------------------------------------------------\n"
    )


def send_booking_confirmation_email(reservation: Reservation) -> None:
    """Compose and send the patient confirmation (call from background task)."""
    if not reservation.email:
        return
    subject = f"【予約確定】{settings.clinic_name}"
    _send_email_sync(reservation.email, subject, build_booking_confirmation_body(reservation))


def send_admin_booking_notification(reservation: Reservation) -> None:
    admin_email = settings.admin_notify_email or settings.from_email
    if not admin_email:
        return
    subject = "【予約システム】新規予約が入りました"
    _send_email_sync(admin_email, subject, build_admin_notification_body(reservation))
