"""Firma HMAC de tickets para verificación offline en puerta"""
import hashlib
import hmac
import json
from typing import Iterable, Optional

MIN_SECRET_LENGTH = 32
SIGNATURE_LENGTH = 64  # HMAC-SHA256 en hexadecimal


class TicketSigner:
    """
    Firma y verifica tickets usando HMAC-SHA256 sobre el ticket_id.

    La firma es determinística (mismo id + mismo secret = misma firma), así
    un QR perdido se puede regenerar sin guardar la firma en la base de datos.

    Para rotar el secret, el secret anterior se pasa en previous_secrets: se
    firma siempre con el activo y se aceptan firmas de cualquiera de los dos.
    """

    def __init__(self, secret: str, previous_secrets: Optional[Iterable[str]] = None):
        if not isinstance(secret, str) or len(secret.strip()) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"El secret de firma debe tener al menos {MIN_SECRET_LENGTH} caracteres"
            )
        self._keys = [secret.encode("utf-8")]
        for old in previous_secrets or ():
            if old and old != secret:
                self._keys.append(old.encode("utf-8"))

    def __repr__(self):
        return f"<TicketSigner(keys={len(self._keys)})>"

    @staticmethod
    def _digest(key: bytes, ticket_id: str) -> str:
        return hmac.new(key, ticket_id.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, ticket_id) -> str:
        """Firma del ticket con el secret activo (hex de 64 caracteres)"""
        return self._digest(self._keys[0], str(ticket_id))

    def verify(self, ticket_id, signature) -> bool:
        """
        Verificar firma en tiempo constante.

        Nunca lanza excepciones: cualquier input malformado devuelve False,
        para no filtrar información a quien prueba ids de tickets.
        """
        if not isinstance(signature, str) or len(signature) != SIGNATURE_LENGTH:
            return False
        if ticket_id is None:
            return False
        try:
            ticket_str = ticket_id.decode("utf-8") if isinstance(ticket_id, bytes) else str(ticket_id)
            provided = signature.encode("ascii")
        except (UnicodeError, ValueError):
            return False

        valid = False
        # Se comparan todas las claves para no variar el tiempo según cuál coincide
        for key in self._keys:
            expected = self._digest(key, ticket_str).encode("ascii")
            valid |= hmac.compare_digest(provided, expected)
        return valid

    def display_payload(self, ticket_id) -> str:
        """Contenido del QR: ticket_id + firma"""
        return json.dumps({"ticketId": str(ticket_id), "signature": self.sign(ticket_id)})


def build_signer() -> TicketSigner:
    """Signer con el secret de la configuración; falla si falta o es inválido"""
    from shared.config import get_settings

    settings = get_settings()
    return TicketSigner(
        settings.TICKET_SIGNING_SECRET,
        previous_secrets=settings.previous_signing_secrets,
    )
