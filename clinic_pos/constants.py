APP_NAME = "Clinic POS"
DATA_DIR = "data"
DB_FILE_NAME = "clinic_pos.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

CURRENCY = "SGD"

# settle delay for free-text discount entry
DISCOUNT_DEBOUNCE_MS = 1000
# autosave after this much inactivity
AUTOSAVE_DELAY_MS = 3000

MAX_DRAFTS = 10
DRAFT_EXPIRY_DAYS = 7

PAYMENT_METHODS = ("cash", "card", "bank_transfer", "digital_wallet", "other")
