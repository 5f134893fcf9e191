"""Per-user journey sessions for the web server."""

import logging
from collections.abc import Callable
from threading import Lock

from cycling_motivator.controller import ProgressController
from cycling_motivator.models import Point
from cycling_motivator.routing import RouteError, RouteResult
from cycling_motivator.scheduler import DEFAULT_DELAY, DebouncedWriter
from cycling_motivator.storage import StateStore, StorageError

logger = logging.getLogger(__name__)


class UserSession:
    """A user's controller, the lock serializing their events, and their pending writes."""

    def __init__(
        self,
        user_id: str,
        controller: ProgressController,
        writer: DebouncedWriter,
        fetcher: Callable[[Point, Point], RouteResult | RouteError],
    ):
        self.user_id = user_id
        self.controller = controller
        self.writer = writer
        self.fetcher = fetcher
        self.lock = Lock()

    def resolve_route(self) -> bool:
        """Fetch the route preview if the controller wants one.

        The fetch runs without holding the session lock, so other events for
        this user are not blocked; a result that went stale in the meantime
        is discarded by the controller.
        """
        with self.lock:
            request = self.controller.begin_route_request()
        if request is None:
            return False
        result = self.fetcher(request.start, request.end)
        with self.lock:
            return self.controller.apply_route_result(request, result)

    def start_journey(self) -> bool:
        """Start tracking; any final route fetch also runs without the session lock."""
        with self.lock:
            request = self.controller.begin_journey_request()
            if request is None:
                return self.controller.start_journey()
        result = self.fetcher(request.start, request.end)
        with self.lock:
            return self.controller.start_journey(request, result)


class SessionRegistry:
    """Lazily loads one UserSession per user id from the store."""

    def __init__(
        self,
        store: StateStore,
        fetcher: Callable[[Point, Point], RouteResult | RouteError],
        save_delay: float = DEFAULT_DELAY,
        default_start: Point | None = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.save_delay = save_delay
        self.default_start = default_start
        self._sessions: dict[str, UserSession] = {}
        self._lock = Lock()

    def get(self, user_id: str) -> UserSession:
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = self._load(user_id)
                self._sessions[user_id] = session
            return session

    def _load(self, user_id: str) -> UserSession:
        try:
            bundle = self.store.load_user_state(user_id)
        except StorageError as e:
            logger.warning("Failed to load state for %s, starting fresh: %s", user_id, e)
            bundle = None

        writer = DebouncedWriter(
            lambda snapshot: self.store.save_user_state(user_id, snapshot),
            delay=self.save_delay,
        )
        try:
            controller = ProgressController.from_bundle(
                bundle,
                fetcher=self.fetcher,
                on_change=writer.schedule,
                default_start=self.default_start,
            )
        except ValueError as e:
            logger.warning("Stored state for %s is invalid, starting fresh: %s", user_id, e)
            controller = ProgressController(
                fetcher=self.fetcher,
                on_change=writer.schedule,
                default_start=self.default_start,
            )
        return UserSession(user_id, controller, writer, self.fetcher)

    def discard(self, user_id: str) -> None:
        """Forget a session without writing its pending state (its stored state was replaced)."""
        with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is not None:
            session.writer.cancel()

    def flush_all(self) -> None:
        """Write every pending snapshot now."""
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            session.writer.flush()
