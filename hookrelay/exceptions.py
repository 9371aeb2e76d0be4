"""
HookRelay exception hierarchy.

Intake errors surface synchronously as HTTP responses. Worker-time errors
(transformation and delivery) are recorded on the Event and drive retries.
"""
from typing import Optional


class HookRelayError(Exception):
    """Base exception for all HookRelay errors."""

    code: str = "hookrelay_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(HookRelayError):
    """Clients configuration file is unreadable or invalid."""

    code = "configuration_error"


class InvalidIdentifier(HookRelayError):
    """Schema or table name outside the allowed identifier grammar."""

    code = "invalid_identifier"

    def __init__(self, kind: str, value: str):
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind} name: {value!r}")


class SignatureInvalid(HookRelayError):
    """Webhook signature missing or does not match the body HMAC."""

    code = "signature_invalid"

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message)


class InvalidPayload(HookRelayError):
    """Request body is not valid JSON."""

    code = "invalid_payload"

    def __init__(self, message: str = "Invalid JSON body"):
        super().__init__(message)


class PersistenceFailure(HookRelayError):
    """Event could not be stored. Nothing was enqueued."""

    code = "persistence_failure"


class TransformationError(HookRelayError):
    """A transformation rule's value transform raised."""

    code = "transformation_error"

    def __init__(self, source: str, target: str, cause: Exception):
        self.source = source
        self.target = target
        self.cause = cause
        super().__init__(f"Transform {source} -> {target} failed: {cause}")


class DeliveryError(HookRelayError):
    """Base for worker-time delivery failures. Always retryable."""

    code = "delivery_error"


class NoDestinationsConfigured(DeliveryError):
    code = "no_destinations"

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"No destinations configured for client {client_id}")


class DestinationDeliveryError(DeliveryError):
    """A single destination failed; remaining destinations were not attempted."""

    code = "destination_failed"

    def __init__(self, destination: str, message: str, status_code: Optional[int] = None):
        self.destination = destination
        self.status_code = status_code
        super().__init__(message)


class QueueMessageError(HookRelayError):
    """A queue message could not be decoded into a Job."""

    code = "queue_message_invalid"
