"""Error taxonomy shared by the stores, the lifecycle engine and the HTTP layer.

Every error carries a stable `code` and the HTTP `status_code` it maps to. Messages
are safe to show to callers; store internals (resource versions, raw API errors)
are logged, never put into a message.
"""


class KeyManagerError(RuntimeError):
    """Base class for all errors raised by keymaster."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(KeyManagerError):
    """Malformed identifier, window or override value."""

    code = "validation_error"
    status_code = 400


class NotFoundError(KeyManagerError):
    """Referenced team, key or policy does not exist."""

    code = "not_found"
    status_code = 404


class ConflictError(KeyManagerError):
    """Duplicate identifier on create, or a stale resource version on update."""

    code = "conflict"
    status_code = 409


class NotAMemberError(KeyManagerError):
    """Key creation by a user with no prior key in a non-default team."""

    code = "not_a_member"
    status_code = 403


class PublishError(KeyManagerError):
    """Enforcement policy upsert failed for a reason other than "already exists"."""

    code = "publish_error"
    status_code = 502


class StoreError(KeyManagerError):
    """The entity or policy store failed in a way we don't classify."""

    code = "store_error"
    status_code = 500


class CredentialGenerationError(KeyManagerError):
    """The secure random source could not produce a credential."""

    code = "credential_generation_error"
    status_code = 500


class TierConfigurationError(KeyManagerError):
    """A configured default tier is missing from the tier table."""

    code = "configuration_error"
    status_code = 500


class UnauthorizedError(KeyManagerError):
    """Missing, malformed or wrong admin credentials."""

    code = "unauthorized"
    status_code = 401


class PolicyManagementDisabledError(KeyManagerError):
    """A policy report was requested while policy management is turned off."""

    code = "policy_management_disabled"
    status_code = 501
