"""findorcreate: find-or-create/upsert for Beanie documents."""

__version__ = "0.1.0"

from .completion import build_completion, resolve_call_args
from .config import FindOrCreateOptions, Settings, get_settings, merge_options
from .deferred import Deferred
from .document import FindOrCreateDocument, FindOrCreateMixin, find_or_create_plugin
from .exceptions import FindOrCreateError, InvalidFieldError, InvalidOptionsError
from .models import FindOrCreateStatus
from .orchestrator import find_or_create, find_or_create_status, run_find_or_create
from .sanitize import sanitize_query

__all__ = [
    "__version__",
    # Core
    "find_or_create",
    "find_or_create_status",
    "run_find_or_create",
    "sanitize_query",
    # Completion
    "Deferred",
    "build_completion",
    "resolve_call_args",
    "FindOrCreateStatus",
    # Model wiring
    "FindOrCreateDocument",
    "FindOrCreateMixin",
    "find_or_create_plugin",
    # Configuration
    "FindOrCreateOptions",
    "Settings",
    "get_settings",
    "merge_options",
    # Errors
    "FindOrCreateError",
    "InvalidFieldError",
    "InvalidOptionsError",
]
