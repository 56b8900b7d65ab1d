"""Endeavor tools package for reporting hours on the Endeavor timesheet portal."""

from importlib.metadata import PackageNotFoundError, version

from .errors import (
    AuthError,
    BatchCancelled,
    CredentialsError,
    EndeavorError,
    EntryParseError,
    HTTPStatusError,
    NoEntriesError,
    SubmissionCancelled,
    SubmitBatchError,
    SubmitError,
    Unauthenticated,
)
from .parser import (
    DEFAULT_SELECTORS,
    Entry,
    EntrySelectors,
    extract_entries,
    parse_entry,
)
from .session import EndeavorSession, SubmitOutcome, ensure_success
from .utils import (
    HOURS_FORM_FIELDS,
    build_hours_form,
    load_credentials,
    require_entries,
)

try:
    __version__ = version("endeavor-tools")
except PackageNotFoundError:
    # Package is not installed, use fallback version
    __version__ = "UNKNOWN"

__all__ = [
    "AuthError",
    "BatchCancelled",
    "CredentialsError",
    "DEFAULT_SELECTORS",
    "EndeavorError",
    "EndeavorSession",
    "Entry",
    "EntryParseError",
    "EntrySelectors",
    "HOURS_FORM_FIELDS",
    "HTTPStatusError",
    "NoEntriesError",
    "SubmissionCancelled",
    "SubmitBatchError",
    "SubmitError",
    "SubmitOutcome",
    "Unauthenticated",
    "build_hours_form",
    "ensure_success",
    "extract_entries",
    "load_credentials",
    "parse_entry",
    "require_entries",
]
