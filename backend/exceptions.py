"""
Error kinds raised by the store, the enhancer and the chatbot dispatcher.

Each carries the HTTP status it maps to at the API boundary.
"""


class TaskFlowError(Exception):
    """Base class for errors surfaced to the user as a structured reply."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidAction(TaskFlowError):
    """Unknown action key or a request missing what the action needs."""

    status_code = 400


class NotFound(TaskFlowError):
    """No task matched the lookup."""

    status_code = 404


class StoreFault(TaskFlowError):
    """The persistence layer failed; the operation was not applied."""

    status_code = 500


class EnrichmentFault(TaskFlowError):
    """
    The enrichment service failed or timed out.

    Never shown to the user: the dispatcher falls back to the raw title,
    so it keeps the base status.
    """
