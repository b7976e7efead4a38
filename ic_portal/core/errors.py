"""
Domain Errors - the failure taxonomy of the portal.

Services raise these; the FastAPI exception handler in app main turns
them into JSON responses using `status_code` and `message`.

    PortalError
    ├── NotFound            404  record missing, client should refresh
    │   └── ProjectNotFound
    ├── Forbidden           403  actor does not own the record
    ├── InvalidTransition   409  status already changed underneath us
    ├── ValidationError     422  bad input caught before any write
    │   ├── AlreadyApplied  409
    │   └── NoResume        422
    └── TransientIO         503  storage unreachable / timed out, retryable
        └── PartialTransition    status written, vacancy write failed
"""

from typing import Optional


class PortalError(Exception):
    status_code = 500
    message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotFound(PortalError):
    status_code = 404
    message = "Record not found, please refresh"


class ProjectNotFound(NotFound):
    message = "Project not found, please refresh"


class Forbidden(PortalError):
    status_code = 403
    message = "You do not have permission to perform this action"


class InvalidTransition(PortalError):
    status_code = 409
    message = "This application was already updated, please refresh"


class ValidationError(PortalError):
    status_code = 422
    message = "Invalid input"


class AlreadyApplied(ValidationError):
    status_code = 409
    message = "You have already applied to this project"


class NoResume(ValidationError):
    message = "Upload your resume before applying to a project"


class TransientIO(PortalError):
    status_code = 503
    message = "Storage is temporarily unavailable, please try again"


class PartialTransition(TransientIO):
    """
    The application status was written but the vacancy count was not.

    The record pair is left inconsistent until someone runs the
    project's vacancy reconciliation.
    """

    def __init__(self, application_id: str, project_id: str, message: Optional[str] = None):
        super().__init__(
            message
            or f"Application {application_id} was updated but project {project_id} "
               f"vacancies could not be saved; refresh and reconcile"
        )
        self.application_id = application_id
        self.project_id = project_id
