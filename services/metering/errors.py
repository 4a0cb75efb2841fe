# services/metering/errors.py


class MeteringError(Exception):
    """Base class for entitlement/metering failures."""


class StorageTransientError(MeteringError):
    """
    The locked read-modify-write on a caller record failed for infrastructure
    reasons (lock timeout, dropped connection, ...). Retryable, and never the
    same thing as an exhausted quota.
    """

    def __init__(self, message="quota storage unavailable", *, caller=None):
        super().__init__(message)
        self.caller = caller


class UnknownPlanError(MeteringError, ValueError):
    def __init__(self, value):
        super().__init__(f"unknown plan: {value!r}")
        self.value = value


class PlanChangeNotAllowed(MeteringError):
    """setPlan/grantBonus aimed at a caller that cannot hold that state."""
