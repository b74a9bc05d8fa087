"""Notification emails sent after provisioning operations"""

from html import escape
from typing import Any, Awaitable, Callable, List, Optional

import structlog

from src.config import settings
from src.errors import PartialSuccess
from src.services.email_service import EmailService, email_service
from src.templates.role_definitions import display_name

logger = structlog.get_logger()

INVITATION_SUBJECT = "Convite para StockMaster CMS"
NEW_USER_SUBJECT = "Novo Usuário Cadastrado - StockMaster"


def build_accept_url(invitation_id: str, app_url: Optional[str] = None) -> str:
    """
    Link to the accept page for an invitation.

    ``app_url`` is only honoured when it is one of ALLOWED_APP_URLS;
    anything else falls back to APP_URL.
    """
    base = settings.APP_URL
    if app_url:
        candidate = app_url.rstrip("/")
        if candidate in [url.rstrip("/") for url in settings.allowed_app_urls_list]:
            base = candidate
        else:
            logger.warning("app_url_rejected", app_url=app_url)
    return f"{base.rstrip('/')}/accept-invite?id={invitation_id}"


def render_invitation_email(
    role: str,
    accept_url: str,
    expiry_days: int,
    invitee_name: Optional[str] = None,
    organization_name: Optional[str] = None,
) -> str:
    url = escape(accept_url, quote=True)
    greeting = f"Olá {escape(invitee_name)}," if invitee_name else "Olá,"
    organization = (
        f" na organização <strong>{escape(organization_name)}</strong>" if organization_name else ""
    )
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #333;">Você foi convidado para StockMaster CMS</h1>
  <p style="color: #666; font-size: 16px;">{greeting}</p>
  <p style="color: #666; font-size: 16px;">
    Você recebeu um convite para se juntar ao StockMaster CMS como <strong>{escape(display_name(role))}</strong>{organization}.
  </p>
  <p style="color: #666; font-size: 16px;">Para aceitar o convite e criar sua conta, clique no botão abaixo:</p>
  <div style="text-align: center; margin: 30px 0;">
    <a href="{url}" style="background-color: #4F46E5; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">
      Aceitar Convite
    </a>
  </div>
  <p style="color: #999; font-size: 14px;">
    Ou copie e cole este link no seu navegador:<br>
    <span style="color: #4F46E5;">{url}</span>
  </p>
  <p style="color: #999; font-size: 14px; margin-top: 30px;">Este convite expira em {expiry_days} dias.</p>
  <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">
  <p style="color: #999; font-size: 12px;">Se você não esperava este convite, pode ignorar este email.</p>
</div>
"""


def render_new_user_email(user_name: str, user_email: str, role: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #2563eb; border-bottom: 2px solid #2563eb; padding-bottom: 10px;">Novo Usuário Cadastrado</h1>
  <p style="font-size: 16px; color: #333; margin: 20px 0;">
    Um novo usuário aceitou o convite e completou o cadastro no StockMaster:
  </p>
  <div style="background-color: #f3f4f6; padding: 15px; border-radius: 8px; margin: 20px 0;">
    <p style="margin: 8px 0;"><strong>Nome:</strong> {escape(user_name)}</p>
    <p style="margin: 8px 0;"><strong>Email:</strong> {escape(user_email)}</p>
    <p style="margin: 8px 0;"><strong>Perfil:</strong> {escape(display_name(role))}</p>
  </div>
  <p style="font-size: 14px; color: #666; margin-top: 20px;">
    O usuário já pode fazer login no sistema com as credenciais cadastradas.
  </p>
  <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 30px 0;">
  <p style="font-size: 12px; color: #9ca3af; text-align: center;">Esta é uma notificação automática do StockMaster</p>
</div>
"""


class NotificationService:
    """Builds and sends provisioning notification emails"""

    def __init__(self, sender: Optional[EmailService] = None):
        self.sender = sender or email_service

    async def send_invitation_email(
        self,
        email: str,
        invitation_id: str,
        role: str,
        app_url: Optional[str] = None,
        invitee_name: Optional[str] = None,
        organization_name: Optional[str] = None,
    ) -> bool:
        """Send the invitation link to the invited address"""
        accept_url = build_accept_url(invitation_id, app_url)
        sent = await self.sender.send_email(
            to_email=email,
            subject=INVITATION_SUBJECT,
            html_body=render_invitation_email(
                role,
                accept_url,
                settings.INVITATION_EXPIRY_DAYS,
                invitee_name=invitee_name,
                organization_name=organization_name,
            ),
        )
        if sent:
            logger.info("invitation_email_sent", invitation_id=invitation_id)
        else:
            logger.warning("invitation_email_not_sent", invitation_id=invitation_id)
        return sent

    async def notify_admins_new_user(
        self,
        admin_emails: List[str],
        user_name: str,
        user_email: str,
        role: str,
    ) -> PartialSuccess:
        """
        Tell every administrator of an organization that a new user joined.

        Each recipient is attempted independently; failures are counted,
        not raised.
        """
        result = PartialSuccess()
        html_body = render_new_user_email(user_name, user_email, role)
        for admin_email in admin_emails:
            try:
                sent = await self.sender.send_email(
                    to_email=admin_email,
                    subject=NEW_USER_SUBJECT,
                    html_body=html_body,
                )
            except Exception as e:
                logger.error("admin_notification_error", to_email=admin_email, error=str(e))
                sent = False
            if sent:
                result.delivered += 1
            else:
                result.failed += 1
                result.failures.append(admin_email)

        log = logger.info if result.complete else logger.warning
        log("admins_notified", delivered=result.delivered, failed=result.failed)
        return result


async def run_best_effort(func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
    """
    Await a notification coroutine, logging instead of raising on failure.

    Used as the body of detached background tasks so a failed email never
    reaches the caller of the provisioning operation.
    """
    try:
        return await func(*args, **kwargs)
    except Exception as e:
        logger.error(
            "notification_failed",
            task=getattr(func, "__name__", repr(func)),
            error=str(e),
        )
        return None


# Singleton instance for easy import
notification_service = NotificationService()
