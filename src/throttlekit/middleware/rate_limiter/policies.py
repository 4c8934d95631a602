from enum import Enum
from typing import Optional


class FailurePolicy(Enum):
    """
    Policies for handling counter store failures.

    These policies determine what happens to a request when its rate limit
    cannot be evaluated because the store is unavailable:
    - FAIL_OPEN: Let the request through without a rate limit check
    - FAIL_CLOSED: Refuse the request with a service unavailable error
    """

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"

    @classmethod
    def from_string(cls, policy_name: str) -> Optional["FailurePolicy"]:
        """
        Convert a string to a FailurePolicy enum value.

        Args:
            policy_name: String representation of the policy

        Returns:
            The matching FailurePolicy or None if not found
        """
        try:
            return cls(policy_name.lower())
        except ValueError:
            return None

    @property
    def description(self) -> str:
        """Get a human-readable description of the policy."""
        if self == FailurePolicy.FAIL_OPEN:
            return "Allow requests without a rate limit check when the store fails"
        return "Reject requests when the store fails"

    def allows_on_failure(self) -> bool:
        """Determine if requests proceed when the store is unavailable."""
        return self == FailurePolicy.FAIL_OPEN
