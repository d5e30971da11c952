"""Payment provider selection.

The single place where regions map to providers. Adding a provider means
adding it to PROVIDERS and, if it serves a new region, to
get_provider_type(). Nothing is cached at module level: every call builds
a fresh provider from the config it is given.
"""

from paycore.services.payment.stripe_provider import StripeProvider
from paycore.services.payment.yukassa_provider import YuKassaProvider

REGION_RU = "RU"
REGION_OTHER = "OTHER"

PROVIDERS = {
    "yukassa": YuKassaProvider,
    "stripe": StripeProvider,
}


def get_region_from_country_code(country_code):
    """Map an ISO 3166-1 alpha-2 country code to a payment region."""
    return REGION_RU if country_code.upper() == REGION_RU else REGION_OTHER


def get_provider_type(region):
    """'yukassa' for Russia, 'stripe' everywhere else."""
    return "yukassa" if region == REGION_RU else "stripe"


def create_provider(provider_type, config=None):
    """Build a provider by its stored name (orders.payment_provider).

    Raises ValueError for unknown names and ConfigurationError when the
    provider's credentials are missing.
    """
    provider_cls = PROVIDERS.get(provider_type)
    if provider_cls is None:
        raise ValueError(f"Unknown payment provider: {provider_type}")
    return provider_cls.from_config(config)


def get_provider(region, config=None):
    """Build the provider serving a region.

    config is an optional mapping such as app.config; values it lacks are
    read from the environment.
    """
    return create_provider(get_provider_type(region), config)
