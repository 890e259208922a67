from typing import Iterable, Optional

from converge.core.models.resource import ResourceError


class ConvergeError(Exception):
    """Base exception for reconciliation failures.

    Attributes:
        message: Human-readable error description
        diagnostic: Aggregated sub-error text of the remote resource, if any
        resource_id: Identifier of the remote resource, if known
    """
    def __init__(
        self,
        message: str,
        diagnostic: Optional[str] = None,
        resource_id: Optional[str] = None
    ):
        self.message = message
        self.diagnostic = diagnostic
        self.resource_id = resource_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.diagnostic:
            return f"{self.message}; last error: {self.diagnostic}"
        return self.message


class TransportError(ConvergeError):
    """Raised when the remote API call itself failed (network, auth, API fault).

    Terminal for a poll session: the poller never retries it.

    Attributes:
        operation: API operation name (e.g. describe_integrations)
        error_code: Vendor error code, when the API returned one
    """
    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        error_code: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        self.operation = operation
        self.error_code = error_code
        super().__init__(message=message, resource_id=resource_id)


class ThrottlingError(TransportError):
    """Transport error the API marked as throttled; transport retries it."""


class TerminalStatusError(ConvergeError):
    """Raised when the resource reached a status outside both pending and target.

    Attributes:
        status: The observed status
        expected: Target statuses the caller was waiting for
    """
    def __init__(
        self,
        status: str,
        expected: Iterable[str] = (),
        diagnostic: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        self.status = status
        self.expected = sorted(expected)
        wanted = ", ".join(self.expected) or "(absent)"
        message = f"unexpected status '{status}', wanted target '{wanted}'"
        super().__init__(message=message, diagnostic=diagnostic, resource_id=resource_id)


class PollTimeoutError(ConvergeError):
    """Raised when the deadline passed while the resource was still pending.

    Attributes:
        timeout_seconds: Configured deadline
        last_status: Last observed status (None if nothing was observed)
    """
    def __init__(
        self,
        timeout_seconds: float,
        last_status: Optional[str] = None,
        diagnostic: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.last_status = last_status
        message = f"timeout while waiting for state to become converged (last status: '{last_status or ''}', timeout: {timeout_seconds:g}s)"
        super().__init__(message=message, diagnostic=diagnostic, resource_id=resource_id)


class ResourceNotFoundError(ConvergeError):
    """Raised when a resource is absent though it was expected to exist.

    Attributes:
        checks: Consecutive not-found observations made (None outside polling)
    """
    def __init__(self, resource_id: Optional[str] = None, checks: Optional[int] = None):
        self.checks = checks
        if checks is None:
            message = f"resource {resource_id} not found"
        else:
            message = f"resource {resource_id} not found after {checks} consecutive checks"
        super().__init__(message=message, resource_id=resource_id)


class PartialFailureDiagnostic(ConvergeError):
    """Advisory diagnostic: the resource carries sub-error records.

    Never raised by the poller; attached to outcomes that reached their target
    and used as the `diagnostic` text of the other errors.
    """
    def __init__(self, errors: Iterable[ResourceError], resource_id: Optional[str] = None):
        self.errors = list(errors)
        message = "; ".join(str(e) for e in self.errors)
        super().__init__(message=message, resource_id=resource_id)


class LayerAttributeError(ConvergeError):
    """Raised when a layer attribute cannot be encoded for the API."""
