"""Exceptions raised by Endeavor tools."""

from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session import SubmitOutcome


class EndeavorError(Exception):
    """Base class for all Endeavor tools errors."""


class HTTPStatusError(EndeavorError):
    """Raised when the portal answers with a non-2xx status code."""

    def __init__(self, url: str, status_code: int, message: str = None):
        detail = f"{url} returned HTTP status code {status_code}"
        super().__init__(f"{message}\n{detail}" if message else detail)
        self.url = url
        self.status_code = status_code


class AuthError(EndeavorError):
    """Raised when login is rejected or does not produce the session cookies."""


class Unauthenticated(EndeavorError):
    """Raised when an operation needs a logged-in session and there is none."""


class EntryParseError(EndeavorError, ValueError):
    """Raised when the timeline page cannot be turned into entries."""


class NoEntriesError(EndeavorError):
    """Raised when there are no entries to act on."""


class CredentialsError(EndeavorError, ValueError):
    """Raised when the credentials file is malformed."""


class SubmitError(EndeavorError):
    """Raised when one step of the submission workflow for an entry fails."""

    def __init__(self, entry_id: str, step: str, message: str):
        super().__init__(
            f"Failed to submit hours for id {entry_id} at {step}: {message}"
        )
        self.entry_id = entry_id
        self.step = step


class SubmissionCancelled(SubmitError):
    """Raised when a submission workflow stops because its batch was cancelled."""

    def __init__(self, entry_id: str, step: str):
        super().__init__(entry_id, step, "batch cancelled")


class SubmitBatchError(EndeavorError):
    """Raised when at least one submission in a batch did not succeed.

    Args:
        outcomes: One SubmitOutcome per submitted id, successes included
    """

    def __init__(self, outcomes: Mapping[str, "SubmitOutcome"]):
        self.outcomes = dict(outcomes)
        failed = ", ".join(self.failed) or "none"
        super().__init__(
            f"{len(self.failed)} of {len(self.outcomes)} submissions failed: {failed}"
        )

    @property
    def failed(self) -> dict[str, "SubmitOutcome"]:
        return {k: v for k, v in self.outcomes.items() if not v.ok}

    @property
    def succeeded(self) -> dict[str, "SubmitOutcome"]:
        return {k: v for k, v in self.outcomes.items() if v.ok}


class BatchCancelled(SubmitBatchError):
    """Raised when a submission batch was cancelled before every id finished."""
