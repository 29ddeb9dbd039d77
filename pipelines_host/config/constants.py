"""
================================================================================
FILE: pipelines_host/config/constants.py
================================================================================

PURPOSE:
    Application-wide constants. Immutable values used throughout codebase.

CONSTANT CATEGORIES:
    1. API Configuration (title, version, route prefixes)
    2. Pipeline sources (extension, metadata defaults, valves file name)
    3. Upload / download limits
    4. Chat completion envelope values

KEY FACTS:
    - No computation, just values
    - Never modify constants at runtime
"""

# ================================================================================
# API CONFIGURATION
# ================================================================================

API_TITLE = "Pipelines Host"
API_DESCRIPTION = "Dynamically loaded pipelines behind an OpenAI-compatible API"
API_VERSION = "1.0.0"
API_VERSION_PREFIX = "/v1"

# ================================================================================
# PIPELINE SOURCES
# ================================================================================

PIPELINE_SOURCE_EXTENSION = ".py"
DEFAULT_PIPELINE_TYPE = "pipe"
VALVES_FILENAME = "valves.json"

# Entry points probed on every loaded unit
REQUIRED_ENTRY_POINT = "pipe"
OPTIONAL_ENTRY_POINTS = ("inlet", "outlet", "valves", "valves_spec", "update_valves")

# Positional arguments handed to pipe/inlet/outlet: (body, user, model)
MAX_CALL_ARITY = 3

# ================================================================================
# UPLOAD / DOWNLOAD LIMITS
# ================================================================================

UPLOAD_CHUNK_READ_SIZE = 8192  # 8KB chunks for streaming validation

# ================================================================================
# CHAT COMPLETION ENVELOPE
# ================================================================================

CHAT_COMPLETION_OBJECT = "chat.completion"
MODEL_OBJECT = "model"
LIST_OBJECT = "list"

CONSTANTS = {
    "API_TITLE": API_TITLE,
    "API_VERSION": API_VERSION,
    "API_VERSION_PREFIX": API_VERSION_PREFIX,
    "PIPELINE_SOURCE_EXTENSION": PIPELINE_SOURCE_EXTENSION,
    "DEFAULT_PIPELINE_TYPE": DEFAULT_PIPELINE_TYPE,
    "VALVES_FILENAME": VALVES_FILENAME,
    "REQUIRED_ENTRY_POINT": REQUIRED_ENTRY_POINT,
    "OPTIONAL_ENTRY_POINTS": OPTIONAL_ENTRY_POINTS,
    "MAX_CALL_ARITY": MAX_CALL_ARITY,
}
