APP_NAME = "FieldVault"
SCHEMA_VERSION = "2"
EXPORT_FORMAT_VERSION = "1.0"

# Key holding the original text of a stored document that is not a JSON object.
RAW_KEY = "_raw"
# Key carrying the entry id in exported documents.
EXPORT_ID_KEY = "ID"

ALL_VIEW_ID = 0
ALL_VIEW_NAME = "All"
