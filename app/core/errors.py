"""
Erreurs métier du moteur de tâches et leur traduction HTTP.

Chaque erreur porte un `code` lisible par machine pour que le client puisse
distinguer "ce créneau est complet" d'un refus générique.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class TaskError(Exception):
    """Base de toutes les erreurs du moteur"""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "task_error"

    def __init__(self, message: str = "", code: str = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class UnauthorizedError(TaskError):
    """Aucune appartenance à la paroisse"""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class ForbiddenError(TaskError):
    """Membre de la paroisse mais sans la capacité demandée"""

    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(TaskError):
    # Aussi utilisée quand la tâche est invisible pour l'acteur
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidStateError(TaskError):
    """Transition illégale, tâche archivée, conflit de concurrence"""

    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class CapacityError(InvalidStateError):
    """Le pool de bénévoles est complet"""

    code = "pool_full"


class InputValidationError(TaskError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


async def task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    # Les sous-classes sont résolues via la MRO par Starlette
    app.add_exception_handler(TaskError, task_error_handler)
