"""Error taxonomy for the quote engine.

Every failure the wizard can surface to a customer is one of these. The
session catches them at the step boundary and keeps the customer on the
current step with an inline message.
"""

from typing import Optional


class QuoteEngineError(Exception):
    """Base class for all quote engine failures."""

    user_message = "Something went wrong. Please try again."


class ValidationBlocked(QuoteEngineError):
    """A step guard is not satisfied, so the forward transition is refused."""

    def __init__(self, violation: str, message: str) -> None:
        super().__init__(message)
        self.violation = violation
        self.user_message = message


class InvalidStepError(QuoteEngineError):
    """An action was attempted on a wizard step that does not offer it."""

    user_message = "That isn't available on this step."

    def __init__(self, step: str, allowed: list[str]) -> None:
        super().__init__(f"Action not available on step '{step}' (allowed on: {allowed})")
        self.step = step
        self.allowed = allowed


class Unpriced(QuoteEngineError):
    """The catalog has no price for a (device, issue, tier) combination."""

    user_message = "That repair option isn't priced yet. Please choose another quality tier."

    def __init__(self, device_name: Optional[str], issue_id: str, tier_id: str) -> None:
        super().__init__(
            f"No price for issue '{issue_id}' tier '{tier_id}' on device '{device_name}'"
        )
        self.device_name = device_name
        self.issue_id = issue_id
        self.tier_id = tier_id


class LookupFailed(QuoteEngineError):
    """A transient failure talking to an availability, inventory, or geocoding provider."""

    user_message = "We couldn't load that right now. Please try again."


class ServiceAreaRejected(QuoteEngineError):
    """The address resolved to a locality outside the service area."""

    def __init__(self, city_label: str) -> None:
        super().__init__(f"Address in '{city_label}' is outside the service area")
        self.city_label = city_label
        self.user_message = f"Not available in {city_label}"


class VerificationFailed(QuoteEngineError):
    """The one-time code could not be sent or was wrong or expired."""

    user_message = "Verification failed. Please check your code and try again."


class CommitFailed(QuoteEngineError):
    """Persisting the customer or the booking record failed."""

    user_message = "Failed to book your repair. Please try again."
