"""Utility functions for Endeavor tools."""

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from re import fullmatch
from sys import stderr

from .errors import CredentialsError, NoEntriesError

logger = logging.getLogger(__name__)

HOURS_FORM_FIELDS = (
    "horas_normais_horas",
    "horas_normais_minutos",
    "horas_extras_horas",
    "horas_extras_minutos",
    "horas_dobro_horas",
    "horas_dobro_minutos",
)


def load_credentials(creds_path: str | Path) -> tuple[str, str]:
    """Read (username, password) from a file of exactly two lines."""
    creds_path = Path(creds_path)
    try:
        lines = [line.strip() for line in creds_path.read_text().splitlines()]
    except FileNotFoundError as e:
        raise CredentialsError(f"Credentials file {creds_path} not found") from e
    if len(lines) != 2:
        raise CredentialsError(f"{creds_path} must have exactly 2 lines")
    logger.debug(f"Loaded credentials from {creds_path}")
    username, password = lines
    return username, password


def parse_duration(text: str) -> tuple[int, int]:
    """Parse "H:MM" (or bare "H") into hours and minutes."""
    m = fullmatch(r"(\d{1,2})(?::(\d{1,2}))?", text.strip())
    if not m:
        raise ValueError(f"Invalid duration {text!r}, expected H:MM")
    hours = int(m.group(1))
    minutes = int(m.group(2) or 0)
    if minutes >= 60:
        raise ValueError(f"Invalid duration {text!r}, minutes must be below 60")
    return hours, minutes


def build_hours_form(
    normal: str = "8:00", overtime: str = "0:00", double_time: str = "0:00"
) -> dict[str, str]:
    """Build the six-field hours form posted for each entry."""
    form = {}
    for prefix, text in zip(
        ("horas_normais", "horas_extras", "horas_dobro"),
        (normal, overtime, double_time),
    ):
        hours, minutes = parse_duration(text)
        form[f"{prefix}_horas"] = f"{hours:02d}"
        form[f"{prefix}_minutos"] = f"{minutes:02d}"
    return form


def check_hours_form(hours_form: Mapping[str, str]) -> None:
    """Raise ValueError unless the form has exactly the expected six fields."""
    if set(hours_form) != set(HOURS_FORM_FIELDS):
        raise ValueError(
            f"Hours form must have fields {', '.join(HOURS_FORM_FIELDS)}, "
            f"got {', '.join(hours_form) or 'none'}"
        )


def parse_id_list(text: str) -> list[str]:
    """Split a comma separated list of ids, dropping empty items."""
    return [part.strip() for part in text.split(",") if part.strip()]


def require_entries(entries: Sequence) -> Sequence:
    """Return entries unchanged, or raise NoEntriesError if there are none."""
    if not entries:
        raise NoEntriesError("No days found")
    return entries


def err(*objects, sep=" ", end="\n", flush=False) -> None:
    """Print to stderr"""
    print(*objects, sep=sep, end=end, flush=flush, file=stderr)
