"""Payment error taxonomy.

Each class maps to one HTTP outcome on the webhook path:

    ConfigurationError   -> provider cannot be built (500, fix deploy)
    TrustError           -> 401, delivery rejected
    NormalizationError   -> 500, provider retries; repeated hits mean a
                            schema mismatch and need a code change
    ReferentialError     -> 400, order does not exist here
    PersistenceError     -> 500, safe to retry (reconciliation is idempotent)
    PaymentProviderError -> outbound call to the provider failed
"""


class PaymentError(Exception):
    """Base class for everything raised by the payment core."""


class ConfigurationError(PaymentError, RuntimeError):
    """Mandatory provider credentials are missing."""


class TrustError(PaymentError):
    """Webhook delivery could not be trusted."""


class NormalizationError(PaymentError, ValueError):
    """Webhook body cannot be mapped to a PaymentResult."""


class UnhandledStatusError(NormalizationError):
    """Provider reported an intermediate state (pending, waiting_for_capture...)."""


class ReferentialError(PaymentError, LookupError):
    """Webhook references an order that does not exist."""


class PersistenceError(PaymentError):
    """Storage failed while reconciling an order."""


class PaymentProviderError(PaymentError):
    """Provider API returned an error or could not be reached."""
