# Models package - import all models here so Alembic can discover them.

from paycore.models.user import User  # noqa: F401
from paycore.models.order import Order, Purchase  # noqa: F401
