# Models package — import all models here so Alembic can discover them.

from productdb.models.user import User  # noqa: F401
from productdb.models.product_line import ProductLine  # noqa: F401
from productdb.models.product import Product  # noqa: F401
from productdb.models.audit import AuditLog  # noqa: F401
