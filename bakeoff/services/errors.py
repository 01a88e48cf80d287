"""
Typed errors raised by the scoring services.

Every error is raised before the service writes anything, and the request
session rolls back on any exception, so a failure never leaves a partial
write behind. ``status_code`` is what the API layer answers with.
"""


class BakeOffError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(BakeOffError):
    """Malformed or missing input."""
    status_code = 400


class NotFoundError(BakeOffError):
    status_code = 404


class EliminatedContestantError(BakeOffError):
    status_code = 409


class EpisodeNotActiveError(BakeOffError):
    status_code = 409


class StarBakerCapExceededError(BakeOffError):
    status_code = 409


class FinalistCountError(BakeOffError):
    status_code = 400


class InconsistentStateError(BakeOffError):
    status_code = 409
