# pscore/services/session.py
import asyncio
import logging
import re
from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError

from pscore.config import settings
from pscore.models.score import (
    GenerationStatus,
    LeaderboardEntry,
    ProductivityScore,
    ScoreHistoryEntry,
    SessionState,
)
from pscore.services.exceptions import (
    GenerationInProgress,
    LeaderboardLoadFailed,
    LLMServiceError,
    PersistenceCorrupt,
    StorageUnavailable,
    ValidationError,
)
from pscore.services.score import ScoreService, get_score_service
from pscore.services.storage import HAS_POSTED, SCORE_HISTORY, USER_ENTRY, USERNAME, KeyValueStore

logger = logging.getLogger("pscore.session")

UTC = ZoneInfo("UTC")

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

CANCELLED_MESSAGE = "Score generation cancelled."
INVALID_USERNAME_MESSAGE = "Please enter a valid username to start."
LEADERBOARD_ERROR_MESSAGE = (
    "Could not load leaderboards. A temporary network issue may have occurred. Please try refreshing."
)

def validate_username(name: str) -> Optional[str]:
    """Return the message to show for an invalid username, or None."""
    if not name:
        return None  # Don't show error for empty input initially
    if len(name) < 3:
        return "Username must be at least 3 characters long."
    if len(name) > 20:
        return "Username cannot exceed 20 characters."
    if not USERNAME_PATTERN.match(name):
        return "Username can only contain letters, numbers, and underscores."
    return None

def friendly_generation_error(error: Exception) -> str:
    # Look at the wrapped cause too, the service replaces the message with a generic one
    text = f"{error} {error.__cause__ or ''}".lower()
    if "api key" in text or "api_key" in text:
        return "Failed to generate score. Please check that your API Key is valid and has sufficient quota."
    if "malformed" in text or "empty response" in text:
        return "The AI returned an invalid response. This may be a temporary issue. Please try again in a moment."
    if isinstance(error, LLMServiceError):
        return "Failed to generate score. There might be a network issue or the service is temporarily down."
    return "An unexpected error occurred while generating your score. Please try again later."

class SessionController:
    """State machine behind one profile: username, generation, history and leaderboards.

    All mutations are persisted to the profile's KeyValueStore. Generation runs
    as an asyncio task so it can be cancelled cooperatively while in flight.
    """

    def __init__(
        self,
        store: KeyValueStore,
        score_service: Optional[ScoreService] = None,
        estimated_time: int = settings.ESTIMATED_TIME_SEC,
        tick_interval: float = settings.COUNTDOWN_TICK_SEC,
    ):
        self.store = store
        self.score_service = score_service or get_score_service()
        self.estimated_time = estimated_time
        self.tick_interval = tick_interval

        self.username = ""
        self.username_error: Optional[str] = None
        self.status = GenerationStatus.IDLE
        self.is_refreshing = False
        self.timer = 0
        self.history: List[ScoreHistoryEntry] = []
        self.selected_history_index: Optional[int] = None
        self.user_entry: Optional[LeaderboardEntry] = None
        self.has_posted = False
        self.verified_leaderboard: List[LeaderboardEntry] = []
        self.unverified_leaderboard: List[LeaderboardEntry] = []
        self.error: Optional[str] = None

        self._activated = False
        self._cancel_token: Optional[asyncio.Event] = None
        self._countdown: Optional[asyncio.Task] = None
        self._generation: Optional[asyncio.Task] = None

    @property
    def profile_id(self) -> str:
        return self.store.profile_id

    @property
    def is_loading(self) -> bool:
        return self.status == GenerationStatus.GENERATING

    # Startup

    async def activate(self) -> None:
        """Load persisted state once. A corrupt key is logged and ignored.

        A database error raises StorageUnavailable and leaves the controller
        unloaded, so the next call reads the store again.
        """
        if self._activated:
            return

        try:
            history = self._load_history()
            user_entry = self._load_user_entry()
            stored_username = self.store.get_item(USERNAME)
            has_posted = self._load_has_posted()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load stored state for {self.profile_id}: {e}")
            raise StorageUnavailable(f"Could not load profile {self.profile_id}") from e

        self.history = history
        if history:
            self.selected_history_index = 0  # Select the latest score by default
        self.user_entry = user_entry
        if stored_username:
            self.username = stored_username
            self.username_error = validate_username(stored_username)
        self.has_posted = has_posted
        self._activated = True

        logger.info(
            f"Activated profile {self.profile_id}: {len(self.history)} scores, posted={self.has_posted}"
        )
        if self.has_posted:
            await self.refresh_leaderboards()

    def _load_history(self) -> List[ScoreHistoryEntry]:
        try:
            history = self.store.get_json(SCORE_HISTORY)
            return [ScoreHistoryEntry.model_validate(h) for h in history or []]
        except (PersistenceCorrupt, SchemaError, TypeError) as e:
            logger.error(f"Failed to load score history for {self.profile_id}: {e}")
            return []

    def _load_user_entry(self) -> Optional[LeaderboardEntry]:
        try:
            user_entry = self.store.get_json(USER_ENTRY)
            return LeaderboardEntry.model_validate(user_entry) if user_entry else None
        except (PersistenceCorrupt, SchemaError) as e:
            logger.error(f"Failed to load user entry for {self.profile_id}: {e}")
            return None

    def _load_has_posted(self) -> bool:
        try:
            return bool(self.store.get_json(HAS_POSTED))
        except PersistenceCorrupt as e:
            logger.error(f"Failed to load posted flag for {self.profile_id}: {e}")
            return False

    # Username

    def set_username(self, name: str) -> Optional[str]:
        self.username = name
        self.store.set_item(USERNAME, name)
        self.username_error = validate_username(name)
        return self.username_error

    # Generation lifecycle

    async def start(self, username: Optional[str] = None) -> asyncio.Task:
        """Begin generating a score and return the running generation task."""
        candidate = self.username if username is None else username
        if not candidate.strip() or validate_username(candidate):
            raise ValidationError(INVALID_USERNAME_MESSAGE)
        if self.is_loading:
            raise GenerationInProgress("A score is already being generated.")

        if username is not None and username != self.username:
            self.set_username(username)

        self.status = GenerationStatus.GENERATING
        self.error = None
        self.selected_history_index = None  # Hide current score while generating new one
        self.timer = self.estimated_time
        # Each run gets its own token and countdown so a stale run never touches a newer one
        token = asyncio.Event()
        countdown = asyncio.create_task(self._run_countdown())
        self._cancel_token = token
        self._countdown = countdown
        self._generation = asyncio.create_task(
            self._run_generation(self.username.strip(), token, countdown)
        )
        logger.info(f"Started score generation for {self.username} ({self.profile_id})")
        return self._generation

    async def _run_countdown(self) -> None:
        while self.timer > 0:
            await asyncio.sleep(self.tick_interval)
            self.timer = max(self.timer - 1, 0)

    def _stop_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    async def _run_generation(self, username: str, cancelled: asyncio.Event, countdown: asyncio.Task) -> None:
        try:
            data = await self.score_service.generate()
        except Exception as e:
            if cancelled.is_set():
                return  # Operation was cancelled, ignore error.
            logger.error(f"Score generation failed: {e}")
            self.error = friendly_generation_error(e)
            self.status = GenerationStatus.FAILED
            return
        finally:
            countdown.cancel()

        if cancelled.is_set():
            return  # Operation was cancelled, do nothing.

        self._record_score(data, username)
        self.status = GenerationStatus.COMPLETED

    def _record_score(self, data: ProductivityScore, username: str) -> None:
        entry = ScoreHistoryEntry(score_data=data, timestamp=datetime.now(UTC).isoformat())
        self.history = [entry, *self.history]
        self.selected_history_index = 0  # View the new score
        self.store.set_json(
            SCORE_HISTORY, [h.model_dump(by_alias=True, mode="json") for h in self.history]
        )

        self.user_entry = LeaderboardEntry(
            run_hash=data.run_hash,
            username=username,
            score=data.utilization_score,
            is_verified=False,
        )
        # Persist user entry for posting
        self.store.set_item(USER_ENTRY, self.user_entry.to_json())
        logger.info(f"Recorded score {data.utilization_score} for {username} ({data.run_hash})")

    def cancel(self) -> bool:
        """Cancel an in-flight generation. Returns False when nothing was running."""
        if not self.is_loading:
            return False
        self._cancel_token.set()
        self._stop_countdown()
        self.timer = 0
        self.status = GenerationStatus.CANCELLED
        self.error = CANCELLED_MESSAGE
        logger.info(f"Score generation cancelled for {self.profile_id}")
        return True

    async def wait_for_generation(self) -> None:
        if self._generation is not None:
            await self._generation

    # History

    def select_history(self, index: int) -> ScoreHistoryEntry:
        if not 0 <= index < len(self.history):
            raise ValidationError(f"No score at history index {index}.")
        self.selected_history_index = index
        return self.history[index]

    @property
    def current_score(self) -> Optional[ScoreHistoryEntry]:
        if self.selected_history_index is None:
            return None
        return self.history[self.selected_history_index]

    def share_text(self) -> Optional[str]:
        current = self.current_score
        if current is None:
            return None
        return (
            f"My AI utilization score is {current.score_data.utilization_score:g}/100! "
            "Here's how I can improve..."
        )

    # Leaderboards

    async def refresh_leaderboards(self) -> None:
        self.is_refreshing = True
        self.error = None
        try:
            boards = await self.score_service.list_leaderboards(self.store)
            self.verified_leaderboard = boards.verified
            self.unverified_leaderboard = boards.unverified
        except LeaderboardLoadFailed as e:
            logger.error(f"Failed to fetch leaderboards: {e}")
            self.error = LEADERBOARD_ERROR_MESSAGE
        finally:
            self.is_refreshing = False

    def _mark_posted(self) -> None:
        self.has_posted = True
        self.store.set_json(HAS_POSTED, True)

    async def post_unverified(self) -> bool:
        if not self.user_entry or self.has_posted:
            return False
        self._mark_posted()
        await self.refresh_leaderboards()
        return True

    async def get_verified(self) -> bool:
        """Flip the local entry to verified. No external verification takes place."""
        if not self.user_entry:
            return False
        # The next leaderboard read reflects this change
        self.user_entry = self.user_entry.model_copy(update={"is_verified": True})
        self.store.set_item(USER_ENTRY, self.user_entry.to_json())

        if not self.has_posted:
            self._mark_posted()

        await self.refresh_leaderboards()
        return True

    def dismiss_error(self) -> None:
        self.error = None

    def snapshot(self) -> SessionState:
        busy = self.is_loading or self.is_refreshing
        return SessionState(
            profile_id=self.profile_id,
            username=self.username,
            username_error=self.username_error,
            status=self.status,
            is_loading=self.is_loading,
            is_refreshing=self.is_refreshing,
            timer=self.timer,
            estimated_time=self.estimated_time,
            history=self.history,
            selected_history_index=self.selected_history_index,
            current_score=None if self.is_loading else self.current_score,
            user_entry=self.user_entry,
            has_posted=self.has_posted,
            verified_leaderboard=self.verified_leaderboard,
            unverified_leaderboard=self.unverified_leaderboard,
            error=self.error,
            can_generate=not busy and bool(self.username.strip()) and not self.username_error,
            can_post_unverified=self.user_entry is not None and not self.has_posted and not busy,
            can_get_verified=(
                self.user_entry is not None and not self.user_entry.is_verified and not busy
            ),
        )

_controllers: Dict[str, SessionController] = {}

def get_session_controller(
    profile_id: str,
    session_factory=None,
    score_service: Optional[ScoreService] = None,
) -> SessionController:
    """One controller per profile, created on first use."""
    controller = _controllers.get(profile_id)
    if controller is None:
        if session_factory is None:
            store = KeyValueStore(profile_id)
        else:
            store = KeyValueStore(profile_id, session_factory)
        controller = SessionController(store, score_service)
        _controllers[profile_id] = controller
    return controller

def clear_session_controllers() -> None:
    _controllers.clear()
