from email.message import EmailMessage
import logging

import aiosmtplib
from app.config import settings

logger = logging.getLogger(__name__)


async def send_email_async(subject: str, email_to: str, body: str, html: str | None = None):
    message = EmailMessage()
    message["From"] = settings.MAIL_FROM
    message["To"] = email_to
    message["Subject"] = subject
    message.set_content(body)
    if html:
        message.add_alternative(html, subtype="html")

    await aiosmtplib.send(
        message,
        hostname=settings.MAIL_SERVER,
        port=settings.MAIL_PORT,
        username=settings.MAIL_USERNAME or None,
        password=settings.MAIL_PASSWORD or None,
        start_tls=True,
    )


async def notify(subject: str, email_to: str, body: str, html: str | None = None) -> bool:
    """
    Envoi "best effort" : une erreur SMTP est journalisée mais ne fait jamais
    échouer la requête appelante.
    """
    if not email_to:
        return False
    try:
        await send_email_async(subject, email_to, body, html)
        return True
    except Exception as e:
        logger.warning(f"Échec d'envoi de l'email '{subject}' à {email_to}: {e}")
        return False


def verification_email(full_name: str, code: str) -> tuple[str, str]:
    subject = "UniClubs - Vérification de votre compte"
    body = (
        f"Bonjour {full_name},\n\n"
        f"Voici votre code de vérification : {code}\n"
        "Il expire dans 2 heures."
    )
    return subject, body


def password_reset_email(full_name: str, code: str) -> tuple[str, str]:
    subject = "UniClubs - Réinitialisation de mot de passe"
    body = (
        f"Bonjour {full_name},\n\n"
        f"Voici votre code de réinitialisation : {code}\n"
        "Il expire dans 2 heures."
    )
    return subject, body


def content_warning_email(
    full_name: str, warning_level: int, content_type: str, deactivated: bool = False
) -> tuple[str, str]:
    subject = f"UniClubs - Avertissement {warning_level}/3"
    body = (
        f"Bonjour {full_name},\n\n"
        f"Un contenu inapproprié a été détecté ({content_type}).\n"
        f"Ceci est votre avertissement {warning_level} sur 3."
    )
    if deactivated:
        body += "\nVotre compte a été désactivé suite à des violations répétées."
    elif warning_level >= 3:
        body += "\nVous ne pouvez plus publier de commentaires."
    return subject, body


def membership_email(full_name: str, club_name: str, accepted: bool) -> tuple[str, str]:
    decision = "acceptée" if accepted else "refusée"
    subject = f"UniClubs - Demande d'adhésion {decision}"
    body = f"Bonjour {full_name},\n\nVotre demande d'adhésion au club {club_name} a été {decision}."
    return subject, body
