"""
Outgoing mail.

smtplib blocks, so every send runs in the default executor of the running
loop and is scheduled fire-and-forget. Without SMTP configuration the mail
is only logged, which is what local runs and tests rely on.
"""
import asyncio
import html
import logging
import smtplib
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from wishlists_app.core.config import settings
from wishlists_app.core.formatting import format_date

logger = logging.getLogger("wishlists.mailer")


def _render_html(title: str, paragraphs: list[str], button_text: str | None = None, button_link: str | None = None) -> str:
    # every user supplied fragment is escaped, links only lose their quotes
    body = "".join(
        f'<p style="margin: 0 0 14px 0; color: #4b5563; font-size: 16px; line-height: 1.6;">{html.escape(p)}</p>'
        for p in paragraphs
    )
    button_html = ""
    if button_text and button_link:
        safe_link = button_link.replace('"', "&quot;").replace("'", "&#x27;")
        button_html = (
            '<div style="text-align: center; margin: 30px 0;">'
            f'<a href="{safe_link}" style="display: inline-block; padding: 14px 28px; '
            "background-color: #e11d48; color: #ffffff; text-decoration: none; "
            f'border-radius: 8px; font-weight: 600;">{html.escape(button_text)}</a></div>'
        )
    safe_title = html.escape(title)
    return f"""<!DOCTYPE html>
<html lang="fr">
<head><meta charset="UTF-8"><title>{safe_title}</title></head>
<body style="margin: 0; padding: 0; background-color: #f3f4f6; font-family: Arial, sans-serif;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <tr><td style="background-color: #ffffff; border-radius: 16px; padding: 40px;">
      <h1 style="margin: 0 0 24px 0; font-size: 26px; color: #e11d48; text-align: center;">{html.escape(settings.app_name)}</h1>
      <h2 style="margin: 0 0 20px 0; font-size: 21px; color: #1f2937; text-align: center;">{safe_title}</h2>
      {body}
      {button_html}
      <p style="margin-top: 40px; color: #9ca3af; font-size: 12px; text-align: center;">
        Vous pouvez désactiver ces e-mails dans les paramètres de votre profil.
      </p>
    </td></tr>
  </table>
</body>
</html>"""


def build_message(to_email: str, subject: str, paragraphs: list[str], button_text: str | None = None, button_link: str | None = None) -> MIMEMultipart:
    text_lines = list(paragraphs)
    if button_link:
        text_lines.append(button_link)
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.smtp_from_email
    message["To"] = to_email
    message.attach(MIMEText("\n\n".join(text_lines), "plain", "utf-8"))
    message.attach(MIMEText(_render_html(subject, paragraphs, button_text, button_link), "html", "utf-8"))
    return message


def _send_sync(message: MIMEMultipart) -> None:
    if settings.smtp_use_tls:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    else:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)


async def _send_async(message: MIMEMultipart) -> None:
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, _send_sync, message)
        logger.info("Email sent to %s subject=%r", message["To"], message["Subject"])
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email to %s subject=%r", message["To"], message["Subject"])


def dispatch(message: MIMEMultipart) -> bool:
    """Schedule ``message`` for delivery. Returns False when nothing was scheduled."""
    if not settings.email_notifications_enabled:
        logger.info("Email notifications disabled, skipping %s: %s", message["To"], message["Subject"])
        return False
    if not settings.smtp_host:
        logger.info("SMTP not configured, email for %s: %s", message["To"], message["Subject"])
        return False
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning("No running loop, dropping email to %s", message["To"])
        return False
    loop.create_task(_send_async(message))
    return True


def send_password_reset_email(to_email: str, reset_link: str) -> bool:
    if not settings.smtp_host:
        logger.info("SMTP not configured. Password reset link for %s: %s", to_email, reset_link)
    return dispatch(
        build_message(
            to_email,
            "Réinitialisation de votre mot de passe",
            [
                "Vous avez demandé à réinitialiser votre mot de passe.",
                "Si vous n'êtes pas à l'origine de cette demande, ignorez cet e-mail.",
            ],
            "Choisir un nouveau mot de passe",
            reset_link,
        )
    )


def send_email_verification_email(to_email: str, verify_link: str) -> bool:
    if not settings.smtp_host:
        logger.info("SMTP not configured. Verification link for %s: %s", to_email, verify_link)
    return dispatch(
        build_message(
            to_email,
            "Confirmez votre adresse e-mail",
            ["Bienvenue ! Confirmez votre adresse pour commencer à partager vos listes."],
            "Confirmer mon adresse",
            verify_link,
        )
    )


def send_invitation_email(
    to_email: str,
    inviter_name: str,
    wishlist_title: str,
    invite_link: str,
    event_date: date | None = None,
) -> bool:
    paragraphs = [f"{inviter_name} vous invite à consulter la liste « {wishlist_title} »."]
    if event_date is not None:
        paragraphs.append(f"Date de l'événement : {format_date(event_date)}")
    paragraphs.append("Créez un compte ou connectez-vous avec cette adresse pour y accéder.")
    return dispatch(
        build_message(
            to_email,
            f"{inviter_name} vous invite à découvrir sa liste",
            paragraphs,
            "Voir la liste",
            invite_link,
        )
    )


def send_access_request_email(to_email: str, requester_name: str, wishlist_title: str, members_link: str, message: str | None = None) -> bool:
    paragraphs = [f"{requester_name} demande l'accès à votre liste « {wishlist_title} »."]
    if message:
        paragraphs.append(f"Message : {message}")
    return dispatch(
        build_message(
            to_email,
            "Nouvelle demande d'accès",
            paragraphs,
            "Gérer les membres",
            members_link,
        )
    )


def send_notification_email(to_email: str, title: str, message: str, link: str | None = None) -> bool:
    return dispatch(build_message(to_email, title, [message], "Ouvrir" if link else None, link))
