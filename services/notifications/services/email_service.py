"""Servicio de envío de emails usando Resend"""
import asyncio
import html
import logging
from typing import List, Optional, Union

import resend

from shared.config import get_settings
from shared.utils.qr_generator import generate_qr_png_base64

logger = logging.getLogger(__name__)


class EmailService:
    """Servicio para enviar emails de tickets usando Resend"""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        settings = get_settings()
        self.resend_api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.from_email = from_email or settings.RESEND_FROM_EMAIL

        if not self.resend_api_key:
            logger.warning("RESEND_API_KEY no configurado. Los emails no se enviarán.")
            self.resend_configured = False
        else:
            resend.api_key = self.resend_api_key
            self.resend_configured = True
            logger.info(f"EmailService (Resend) inicializado con from: {self.from_email}")

    async def send_email(
        self,
        to_email: Union[str, List[str]],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> bool:
        """
        Enviar email usando Resend

        Returns:
            True si se envió correctamente, False en caso contrario
        """
        if not self.resend_configured:
            logger.warning(f"Resend no configurado. Email simulado a {to_email}: {subject}")
            return True

        to_emails = [to_email] if isinstance(to_email, str) else to_email
        params = {
            "from": self.from_email,
            "to": to_emails,
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            params["text"] = text_content

        # Resend SDK es síncrono, se ejecuta en el thread pool
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, resend.Emails.send, params)
        except Exception as e:
            logger.error(f"Error enviando email a {to_emails}: {e}", exc_info=True)
            return False

        logger.info(f"Email enviado exitosamente a {to_emails}: {subject} (ID: {result.get('id', 'N/A')})")
        return True

    async def send_ticket_email(
        self,
        to_email: str,
        event_name: str,
        ticket_id: str,
        qr_payload: str,
    ) -> bool:
        """Enviar email con el ticket y su QR"""
        qr_image_base64 = generate_qr_png_base64(qr_payload)
        safe_event = html.escape(event_name)

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="UTF-8"></head>
        <body style="font-family: Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #4f46e5;">Tu ticket para {safe_event}</h1>
            <p>Tu pago fue verificado en la red Stellar y tu ticket ya está emitido.</p>
            <div style="text-align: center; margin: 30px 0;">
                <img src="data:image/png;base64,{qr_image_base64}"
                     alt="Código QR del Ticket" width="250" height="250"
                     style="display: block; margin: 0 auto;" />
                <p style="font-size: 12px; color: #6b7280;">Escanea este código en la entrada del evento</p>
            </div>
            <p style="font-size: 12px; color: #6b7280;">Ticket ID: {ticket_id}</p>
        </body>
        </html>
        """
        text_content = f"Tu ticket para {event_name} fue emitido. Ticket ID: {ticket_id}"

        return await self.send_email(
            to_email=to_email,
            subject=f"Tu ticket para {event_name}",
            html_content=html_content,
            text_content=text_content,
        )
