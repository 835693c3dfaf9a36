"""Table registry — the closed set of tables the API can touch.

Each TableSpec carries the model, the column allow-list for caller input,
the optional file column, the optional name-to-id lookup and the fixed
listing order. Routes bind a TableSpec directly, so no table or column
name supplied by a caller ever reaches SQL.
"""

from sqlalchemy import Integer

from productdb.models.audit import AuditLog
from productdb.models.product import Product
from productdb.models.product_line import ProductLine
from productdb.models.user import User

# Columns the server owns; stripped from every caller payload.
SERVER_MANAGED_FIELDS = frozenset(
    ["id", "created_at", "created_by", "updated_at", "updated_by"]
)

RETAINED_SUFFIX = "_retained"


class NameLookup:
    """Resolve payload[field] (a name) to payload[id_field] via target.column."""

    def __init__(self, field, id_field, target, column, label):
        self.field = field
        self.id_field = id_field
        self.target = target
        self.column = column
        self.label = label

    def not_found_message(self, value):
        return (
            f'{self.label} with name "{value}" not found. '
            f"Please create the {self.label} first."
        )


class TableSpec:
    def __init__(
        self,
        name,
        model,
        allowed_columns=(),
        file_column=None,
        required=(),
        name_lookup=None,
        writable=True,
        order_by=None,
        excluded_actions=(),
        limit_config_key=None,
    ):
        self.name = name
        self.model = model
        self.allowed_columns = frozenset(allowed_columns)
        self.file_column = file_column
        self.required = tuple(required)
        self.name_lookup = name_lookup
        self.writable = writable
        self.order_by = order_by or (lambda: [model.id.asc()])
        self.excluded_actions = tuple(excluded_actions)
        self.limit_config_key = limit_config_key

        if file_column and file_column not in self.allowed_columns:
            raise ValueError(f"{name}: file column {file_column} must be allow-listed")

    @property
    def retained_field(self):
        """Form/JSON field carrying the references a caller keeps on update."""
        if self.file_column is None:
            return None
        return f"{self.file_column}{RETAINED_SUFFIX}"

    @property
    def integer_columns(self):
        return frozenset(
            col.key
            for col in self.model.__table__.columns
            if col.key in self.allowed_columns
            and isinstance(col.type, Integer)
        )

    def __repr__(self):
        return f"<TableSpec {self.name}>"


PRODUCT_LINES = TableSpec(
    name="product_lines",
    model=ProductLine,
    allowed_columns=[
        "name", "type_of_products", "manufacturing_locations",
        "design_center", "product_line_manager", "history",
        "type_of_customers", "metiers", "strength", "weakness",
        "perspectives", "compliance_resource_id", "attachments_raw",
    ],
    file_column="attachments_raw",
    required=["name"],
    order_by=lambda: [ProductLine.created_at.desc(), ProductLine.id.desc()],
)

PRODUCTS = TableSpec(
    name="products",
    model=Product,
    allowed_columns=[
        "product_name", "product_line", "description", "product_definition",
        "operating_environment", "technical_parameters",
        "machines_and_tooling", "manufacturing_strategy",
        "purchasing_strategy", "prototypes_ppap_and_sop",
        "engineering_and_testing", "capacity", "our_advantages", "gmdc_pct",
        "product_line_id", "customers_in_production",
        "customer_in_development", "level_of_interest_and_why",
        "estimated_price_per_product", "prod_if_customer_in_china",
        "costing_data", "product_pictures",
    ],
    file_column="product_pictures",
    required=["product_name"],
    name_lookup=NameLookup(
        field="product_line",
        id_field="product_line_id",
        target=ProductLine,
        column="name",
        label="Product line",
    ),
    order_by=lambda: [Product.created_at.desc(), Product.id.desc()],
)

USERS = TableSpec(
    name="users",
    model=User,
    writable=False,
    order_by=lambda: [User.created_at.desc(), User.id.desc()],
)

AUDIT_LOGS = TableSpec(
    name="audit_logs",
    model=AuditLog,
    writable=False,
    order_by=lambda: [AuditLog.logged_at.desc(), AuditLog.id.desc()],
    excluded_actions=AuditLog.SESSION_ACTIONS,
    limit_config_key="AUDIT_LOG_LIMIT",
)

TABLES = {spec.name: spec for spec in (PRODUCT_LINES, PRODUCTS, USERS, AUDIT_LOGS)}

# Upload field name -> table that owns it
FILE_FIELDS = {
    spec.file_column: spec for spec in TABLES.values() if spec.file_column
}


def get_table(name):
    """Look up a TableSpec by name. Raises KeyError for unknown tables."""
    return TABLES[name]
