"""hubsync exception hierarchy."""


class HubSyncError(Exception):
    """Base exception for all hubsync errors."""

    status_code: int = 500

    def __init__(self, message: str = "", code: str = "HUBSYNC_ERROR", status_code: int | None = None):
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class AuthenticationRequiredError(HubSyncError):
    """Raised when no authenticated identity accompanies the request."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHENTICATED")


class AuthorizationDeniedError(HubSyncError):
    """Raised when the identity's membership or role is insufficient."""

    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN")


class NotFoundError(HubSyncError):
    """Raised when a hub, mapping or entity is absent or deactivated."""

    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class UpstreamAPIError(HubSyncError):
    """Raised on transport or API-level failures from the issue tracker."""

    status_code = 502

    def __init__(self, message: str = "Upstream API error"):
        super().__init__(message, code="UPSTREAM_ERROR")


class SignatureInvalidError(HubSyncError):
    """Raised when a webhook signature is missing or does not verify."""

    status_code = 401

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, code="SIGNATURE_INVALID")


class ValidationError(HubSyncError):
    """Raised on malformed requests."""

    status_code = 400

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, code="VALIDATION_ERROR")


class MappingConflictError(HubSyncError):
    """Raised when a team is already actively mapped to another hub."""

    status_code = 409

    def __init__(self, message: str = "Team is already mapped to another hub"):
        super().__init__(message, code="MAPPING_CONFLICT")


class CredentialMissingError(HubSyncError):
    """Raised when no upstream API credential is configured."""

    status_code = 503

    def __init__(self, message: str = "No upstream API token configured"):
        super().__init__(message, code="CREDENTIAL_MISSING")
