"""Project-specific exception types and the failure signatures they carry."""

from __future__ import annotations

import enum


class FailureSignature(str, enum.Enum):
    """Known failure families, used to pick remediation text after a failed run."""

    SNAPD_SEEDING = 'seeding-timeout'
    MULTIPASS = 'multipass'
    PRECONDITION = 'precondition'
    GENERIC = 'generic'


class LabVMError(RuntimeError):
    """Base error for domain-level labvm failures."""


class SetupError(LabVMError):
    """Fatal workflow failure tagged with the signature used for remediation."""

    def __init__(
        self,
        message: str,
        signature: FailureSignature = FailureSignature.GENERIC,
        *,
        diagnostics=None,
    ):
        super().__init__(message)
        self.signature = FailureSignature(signature)
        self.diagnostics = diagnostics


class PreconditionError(SetupError):
    """Raised when the host cannot run the workflow at all."""

    def __init__(self, message: str):
        super().__init__(message, FailureSignature.PRECONDITION)


class AttemptsExhaustedError(LabVMError):
    """Raised when a bounded retry context is asked to count past its budget."""
