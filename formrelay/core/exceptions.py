class FormRelayError(Exception):
    """Base exception for FormRelay.

    Carries a stable machine-readable ``code`` and the HTTP status the API
    layer renders it with.
    """

    code = "form_relay_error"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class QuotaExceededError(FormRelayError):
    """Raised when a plan quota (forms or monthly submissions) is exhausted."""

    code = "quota_exceeded"
    status_code = 403

    def __init__(self, kind: str, current: int, limit: int, message: str | None = None):
        self.kind = kind
        self.current = current
        self.limit = limit
        super().__init__(
            message or f"{kind.replace('_', ' ').capitalize()} limit reached ({current}/{limit}) for your plan",
            details={"kind": kind, "current": current, "limit": limit},
        )


class NotFoundError(FormRelayError):
    """Raised for missing resources and for resources owned by another tenant."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"{resource} not found")


class PlanRestrictedError(FormRelayError):
    """Raised when a feature requires a higher plan tier."""

    code = "plan_restricted"
    status_code = 403

    def __init__(self, feature: str, required_plan: str, message: str | None = None):
        self.feature = feature
        self.required_plan = required_plan
        super().__init__(
            message or f"{feature} is only available with the {required_plan} plan",
            details={"feature": feature, "required_plan": required_plan},
        )


class DuplicateSubmissionError(FormRelayError):
    """Raised when a form already holds a submission for the same email."""

    code = "duplicate_submission"
    status_code = 409

    def __init__(self, form_id: str, email: str):
        self.form_id = form_id
        self.email = email
        super().__init__(
            "A submission with this email already exists for this form",
            details={"form_id": form_id},
        )


class InvalidSubmissionError(FormRelayError):
    """Raised when a submission payload cannot be accepted as-is."""

    code = "invalid_submission"
    status_code = 422


class DeliveryError(FormRelayError):
    """Raised by a mail transport when a message could not be delivered.

    Never reaches an HTTP caller: the delivery executor records it as a
    FAILED notification log.
    """

    code = "delivery_failure"
    status_code = 502


class StoreError(FormRelayError):
    """Raised when a persistence operation fails and was rolled back."""

    code = "store_failure"
    status_code = 500
