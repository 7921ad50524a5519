"""
Ошибки панели.
Каждая ошибка несёт человекочитаемое сообщение и HTTP статус для адаптера.
"""

from typing import List, Optional


class PanelError(Exception):
    """Base class for every error the core surfaces to a request handler."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {'success': False, 'error': self.message}


class ValidationError(PanelError):
    status_code = 400


class ForbiddenOperation(PanelError):
    status_code = 403


class PathEscape(PanelError):
    """Путь выходит за пределы корня. Абсолютный путь в сообщение не попадает."""

    status_code = 403

    def __init__(self, message: str = 'Path is outside of the allowed root'):
        super().__init__(message)


class NotFound(PanelError):
    status_code = 404


class PayloadTooLarge(PanelError):
    status_code = 413


class ExecutionFailure(PanelError):
    status_code = 500


class CommandNotAllowed(ExecutionFailure):
    status_code = 403


class InvalidArgument(ExecutionFailure):
    status_code = 400


class CommandTimeout(ExecutionFailure):
    status_code = 504


class ReloadFailed(ExecutionFailure):
    """Файл уже изменён, но демон не перезагрузился."""

    def __init__(self, service: str, reason: str):
        super().__init__(f'Changes were saved but {service} could not be reloaded: {reason}')
        self.service = service
        self.reason = reason


class PartialFailure(PanelError):
    """Multi-step operation failed and some completed steps could not be undone."""

    status_code = 500

    def __init__(self, message: str, leftovers: Optional[List[str]] = None):
        self.leftovers = list(leftovers or [])
        if self.leftovers:
            message = f"{message} (left in place: {', '.join(self.leftovers)})"
        super().__init__(message)
