# pharmacy_pos/constants.py

DATA_DIR = "data"
DB_FILE_NAME = "pos.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# ---- sale lifecycle (server-side status column) ----
SALE_STATUS_DRAFT = "draft"
SALE_STATUS_PENDING = "pending"
SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_CANCELLED = "cancelled"

DISCOUNT_FIXED = "fixed"
DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_TYPES = (DISCOUNT_FIXED, DISCOUNT_PERCENTAGE)

PAYMENT_METHODS = (
    "cash",
    "visa",
    "mastercard",
    "bank_transfer",
    "mada",
    "store_credit",
    "other",
)

# Message the sale service attaches to an add-item response when the product
# is already a line on the sale.
ALREADY_EXISTS_MESSAGE = "exists"

# ---- input limits (per line / per amount) ----
MAX_LINE_QUANTITY = 100_000
MAX_AMOUNT = "10000000.00"

# ---- notifications (engine -> UI toasts) ----
NOTIFY_SUCCESS = "success"
NOTIFY_INFO = "info"
NOTIFY_ERROR = "error"

# ---- terminal behaviour ----
# After a payment settles, keep the sale selected and ask the UI for a receipt.
AUTO_OPEN_RECEIPT = True
# Today's-sales list shows only the logged-in operator's sales by default.
FILTER_BY_OPERATOR_DEFAULT = True
