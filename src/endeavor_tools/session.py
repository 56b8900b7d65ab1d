"""EndeavorSession class for handling Endeavor authentication and requests."""

import logging
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from operator import attrgetter
from threading import Event
from urllib.parse import quote, urljoin

from requests import Request, RequestException, Response, Session
from requests.cookies import RequestsCookieJar, get_cookie_header

from .errors import (
    AuthError,
    BatchCancelled,
    HTTPStatusError,
    SubmissionCancelled,
    SubmitBatchError,
    SubmitError,
    Unauthenticated,
)
from .parser import DEFAULT_SELECTORS, Entry, EntrySelectors, extract_entries
from .utils import check_hours_form

logger = logging.getLogger(__name__)

BASE_URL = "https://www.endeavor.net.br/"
LANDING_PATH = "horas"
LOGIN_PATH = "mobile_v2/login.asp?Action=Login"
TIMELINE_PATH = "mobile_v2/time_line.asp"
TASK_PATH = "mobile_v2/tarefa.asp?app_id={app_id}"
ENTRY_PATH = "mobile_v2/apontamento.asp?hist=&app_id={app_id}"
SUBMIT_PATH = "mobile_v2/apontamento.asp?Action=Post&app_id={app_id}"
FINALIZE_PATH = "mobile_v2/finalizar.asp?app_id={app_id}"
AUTH_COOKIES = ("ENDEAVORu", "ENDEAVORp")
DEFAULT_TIMEOUT = 30
DEFAULT_MAX_WORKERS = 4


def ensure_success(response: Response, message: str = None) -> Response:
    """Raise HTTPStatusError unless the response has a 2xx status code."""
    if not 200 <= response.status_code < 300:
        raise HTTPStatusError(response.url, response.status_code, message)
    return response


@dataclass(frozen=True)
class SubmitOutcome:
    """Result of submitting hours for one entry id."""

    entry_id: str
    error: SubmitError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def step(self) -> str | None:
        """Name of the workflow step that failed, if any."""
        return self.error.step if self.error else None


class SharedCookieJar(RequestsCookieJar):
    """Cookie jar that can be shared by concurrent requests.

    CookieJar already holds its lock while storing cookies from a response
    and while adding them to a request. Iteration here takes a snapshot
    under the same lock, so lookups never see the jar mid-update.
    """

    def __iter__(self):
        with self._cookies_lock:
            cookies = list(super().__iter__())
        return iter(cookies)


class EndeavorSession(Session):
    """Session class for interacting with the Endeavor timesheet portal."""

    def __init__(
        self,
        base_url: str = BASE_URL,
        emulate_browser: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        max_workers: int = DEFAULT_MAX_WORKERS,
        selectors: EntrySelectors = DEFAULT_SELECTORS,
    ):
        super().__init__()
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.base_url: str = base_url if base_url.endswith("/") else base_url + "/"
        self.emulate_browser = emulate_browser
        self.timeout = timeout
        self.max_workers = max_workers
        self.selectors = selectors
        self.cookies: RequestsCookieJar = SharedCookieJar()

    def request(self, method, url, *args, **kwargs) -> Response:
        """Send a request relative to `base_url`, applying the session timeout."""
        kwargs.setdefault("timeout", self.timeout)
        url = urljoin(self.base_url, url)
        logger.debug(f"{method} {url}")
        return super().request(method, url, *args, **kwargs)

    def warm_up(self, url: str) -> None:
        """GET a page only to look like a browser; the content is discarded."""
        if self.emulate_browser:
            ensure_success(self.get(url))

    def login(self, username: str, password: str) -> None:
        """Log in and check that the portal handed out the session cookies.

        The portal answers 200 even for bad credentials, so the presence of
        the authentication cookies is the only success signal.

        Raises:
            AuthError: If the warm-up or login post is rejected, or the cookies
                are missing
        """
        try:
            self.warm_up(LANDING_PATH)
        except HTTPStatusError as e:
            raise AuthError(f"Login warm-up rejected: {e}") from e

        response = self.post(
            LOGIN_PATH, data={"UserLogon": username, "UserPwd": password}
        )
        try:
            ensure_success(response, "Login post failed")
        except HTTPStatusError as e:
            raise AuthError(f"Login request rejected: {e}") from e

        missing = self.missing_auth_cookies()
        if missing:
            raise AuthError(
                "Authentication did not establish expected session tokens, "
                f"missing cookies: {', '.join(missing)}"
            )
        logger.info(f"Logged in to {self.base_url}")

    def missing_auth_cookies(self) -> list[str]:
        """Return the authentication cookies the jar would not send to `base_url`."""
        header = get_cookie_header(self.cookies, Request("GET", self.base_url)) or ""
        sent = {pair.partition("=")[0] for pair in header.split("; ")}
        return [name for name in AUTH_COOKIES if name not in sent]

    def is_authenticated(self) -> bool:
        return not self.missing_auth_cookies()

    def require_authenticated(self) -> None:
        """Raise Unauthenticated unless both authentication cookies are held."""
        missing = self.missing_auth_cookies()
        if missing:
            raise Unauthenticated(
                f"Not logged in, missing cookies: {', '.join(missing)}"
            )

    def cookie_names(self) -> list[str]:
        """Names of all cookies in the session, without their values."""
        return sorted({cookie.name for cookie in self.cookies})

    def list_pending_entries(
        self, include_future: bool = False, today: date = None
    ) -> list[Entry]:
        """Fetch the timeline page and return its entries sorted by date.

        Args:
            include_future: Keep entries dated after today
            today: Reference day for the future filter, defaults to date.today()

        Returns:
            Entries in ascending date order, possibly empty

        Raises:
            Unauthenticated: If login has not succeeded
            HTTPStatusError: If the timeline page cannot be fetched
            EntryParseError: If any entry on the page is malformed
        """
        self.require_authenticated()
        response = ensure_success(self.get(TIMELINE_PATH), "Failed to get timeline")

        entries = extract_entries(response.text, self.selectors)
        if not include_future:
            if today is None:
                today = date.today()
            entries = [entry for entry in entries if entry.date <= today]
        entries.sort(key=attrgetter("date"))

        logger.info(f"Found {len(entries)} pending entries")
        return entries

    def submit_entry(
        self, entry_id: str, hours_form: Mapping[str, str], cancel_event: Event = None
    ) -> None:
        """Run the four-step submission workflow for one entry.

        Raises:
            ValueError: If the hours form does not have the expected fields
            Unauthenticated: If login has not succeeded
            SubmitError: If any step fails, naming that step
        """
        check_hours_form(hours_form)
        self.require_authenticated()
        self._submit_workflow(entry_id, hours_form, cancel_event)

    def submit_entries_concurrently(
        self,
        ids: Iterable[str],
        hours_form: Mapping[str, str],
        cancel_event: Event = None,
    ) -> dict[str, SubmitOutcome]:
        """Submit hours for many entries at once, one workflow per unique id.

        Every workflow runs to completion even when others fail. Setting
        `cancel_event` stops the remaining workflows at their next step.

        Returns:
            One SubmitOutcome per unique id, in first-seen order

        Raises:
            SubmitBatchError: If any submission failed; carries every outcome
            BatchCancelled: If the batch was cancelled; carries every outcome
        """
        check_hours_form(hours_form)
        self.require_authenticated()
        unique_ids = list(dict.fromkeys(entry_id for entry_id in ids if entry_id))
        if cancel_event is None:
            cancel_event = Event()

        logger.info(
            f"Submitting {len(unique_ids)} entries "
            f"with up to {self.max_workers} workers"
        )
        outcomes = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(
                    self._submit_outcome, entry_id, hours_form, cancel_event
                )
                for entry_id in unique_ids
            ]
            try:
                for future in as_completed(futures):
                    outcome = future.result()
                    outcomes[outcome.entry_id] = outcome
            except BaseException:
                cancel_event.set()
                raise
        outcomes = {entry_id: outcomes[entry_id] for entry_id in unique_ids}

        failed = [outcome for outcome in outcomes.values() if not outcome.ok]
        for outcome in failed:
            logger.error(str(outcome.error))
        if any(isinstance(outcome.error, SubmissionCancelled) for outcome in failed):
            raise BatchCancelled(outcomes)
        if failed:
            raise SubmitBatchError(outcomes)
        return outcomes

    def _submit_outcome(
        self, entry_id: str, hours_form: Mapping[str, str], cancel_event: Event
    ) -> SubmitOutcome:
        try:
            self._submit_workflow(entry_id, hours_form, cancel_event)
        except SubmitError as e:
            return SubmitOutcome(entry_id, e)
        return SubmitOutcome(entry_id)

    def _submit_workflow(
        self, entry_id: str, hours_form: Mapping[str, str], cancel_event: Event = None
    ) -> None:
        app_id = quote(entry_id, safe="")

        with self._submit_step(entry_id, "task-detail", cancel_event):
            self.warm_up(TASK_PATH.format(app_id=app_id))
        with self._submit_step(entry_id, "entry-detail", cancel_event):
            self.warm_up(ENTRY_PATH.format(app_id=app_id))
        with self._submit_step(entry_id, "submit", cancel_event):
            url = SUBMIT_PATH.format(app_id=app_id)
            response = self.post(url, data=dict(hours_form))
            ensure_success(response, "Submit request rejected")
        with self._submit_step(entry_id, "finalize", cancel_event):
            response = self.get(FINALIZE_PATH.format(app_id=app_id))
            ensure_success(response, "Finalize request rejected")

        logger.info(f"Submitted hours for id {entry_id}")

    @staticmethod
    @contextmanager
    def _submit_step(entry_id: str, step: str, cancel_event: Event = None):
        """Tag failures inside the block with the entry id and step name."""
        if cancel_event is not None and cancel_event.is_set():
            raise SubmissionCancelled(entry_id, step)
        logger.debug(f"id {entry_id}: {step}")
        try:
            yield
        except (HTTPStatusError, RequestException) as e:
            raise SubmitError(entry_id, step, str(e)) from e
