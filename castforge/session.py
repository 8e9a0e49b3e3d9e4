"""
Session lifecycle.

A SessionContext owns everything one pipeline run creates: its state,
scratch directory and background cleanup tasks. Nothing is shared between
sessions through module globals.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Coroutine, Dict, FrozenSet, List, Optional, Set, Tuple

from .config.settings import Settings
from .errors import InvalidTransitionError
from .models import Session
from .utils.files import ensure_dir
from .utils.validation import safe_path_join, validate_session_id

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CHUNKING = "chunking"
    SYNTHESIZING = "synthesizing"
    MERGING = "merging"
    EDITING = "editing"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.DONE, SessionState.FAILED)


TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.CHUNKING: frozenset({SessionState.SYNTHESIZING, SessionState.FAILED}),
    SessionState.SYNTHESIZING: frozenset({SessionState.MERGING, SessionState.FAILED}),
    SessionState.MERGING: frozenset({SessionState.EDITING, SessionState.FAILED}),
    SessionState.EDITING: frozenset({SessionState.ASSEMBLING, SessionState.FAILED}),
    SessionState.ASSEMBLING: frozenset({SessionState.DONE, SessionState.FAILED}),
    SessionState.DONE: frozenset(),
    SessionState.FAILED: frozenset(),
}


@dataclass
class SessionContext:
    """Per-session state shared by the pipeline components."""

    session: Session
    settings: Settings
    state: SessionState = SessionState.CHUNKING
    history: List[Tuple[SessionState, float]] = field(default_factory=list)
    error: Optional[str] = None
    _scratch_dir: Optional[Path] = field(default=None, repr=False)
    _background: Set[asyncio.Task] = field(default_factory=set, repr=False)

    def __post_init__(self):
        validate_session_id(self.session.session_id)
        if not self.history:
            self.history.append((self.state, time.time()))

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def scratch_dir(self) -> Path:
        if self._scratch_dir is None:
            self._scratch_dir = ensure_dir(self.settings.scratch_dir)
        return self._scratch_dir

    def scratch_path(self, suffix: str) -> Path:
        """Scratch file named ``<session>_<suffix>`` inside the scratch dir."""
        return safe_path_join(self.scratch_dir, f"{self.session_id}_{suffix}")

    def transition(self, new_state: SessionState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Session {self.session_id}: cannot move from {self.state.value} to {new_state.value}"
            )
        logger.info(
            f"Session {self.session_id}: {self.state.value} -> {new_state.value}",
            extra={"session_id": self.session_id},
        )
        self.state = new_state
        self.history.append((new_state, time.time()))

    def fail(self, reason: str) -> None:
        """Move to FAILED from any non-terminal state."""
        if self.state.terminal:
            return
        self.error = reason
        logger.error(
            f"Session {self.session_id} failed during {self.state.value}: {reason}",
            extra={"session_id": self.session_id},
        )
        self.transition(SessionState.FAILED)

    def spawn_background(self, coro: Coroutine, name: str = "") -> asyncio.Task:
        """Run a coroutine owned by this session (e.g. deferred cleanup)."""
        task = asyncio.create_task(coro, name=name or None)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @property
    def background_tasks(self) -> Set[asyncio.Task]:
        return set(self._background)

    async def drain_background(self, cancel: bool = False) -> None:
        """Wait for (or cancel) outstanding background tasks."""
        tasks = list(self._background)
        if not tasks:
            return
        if cancel:
            for task in tasks:
                task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"Background task for {self.session_id} failed: {result}")
