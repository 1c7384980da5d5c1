"""Errores de dominio del ciclo de vida de tickets"""


class TicketingError(Exception):
    """
    Error base. Cada subclase define el status HTTP con que se expone
    y si el cliente puede reintentar la operación sin cambiar el input.
    """
    status_code = 400
    code = "ticketing_error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
        }


class NotFoundError(TicketingError):
    status_code = 404
    code = "not_found"


class InvalidStateError(TicketingError):
    status_code = 400
    code = "invalid_state"


class AlreadyUsedError(InvalidStateError):
    """Ticket ya escaneado; distinto de InvalidStateError para mostrar un mensaje específico"""
    status_code = 409
    code = "already_used"


class ForbiddenError(TicketingError):
    status_code = 403
    code = "forbidden"


class UnauthorizedError(TicketingError):
    status_code = 401
    code = "unauthorized"


class UpstreamError(TicketingError):
    """Horizon o la base de datos no disponibles; seguro de reintentar"""
    status_code = 503
    code = "upstream_unavailable"
    retryable = True
