# Payment providers - public surface used by blueprints and services.

from paycore.services.payment.base import (  # noqa: F401
    PaymentProvider,
    PaymentResult,
    PaymentSession,
)
from paycore.services.payment.errors import (  # noqa: F401
    ConfigurationError,
    NormalizationError,
    PaymentError,
    PaymentProviderError,
    PersistenceError,
    ReferentialError,
    TrustError,
    UnhandledStatusError,
)
from paycore.services.payment.factory import (  # noqa: F401
    REGION_OTHER,
    REGION_RU,
    create_provider,
    get_provider,
    get_provider_type,
    get_region_from_country_code,
)
