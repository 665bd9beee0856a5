"""Session state store — all mutable state of one creation flow.

Each setter replaces one named slot, so a reader never observes a half-applied
update. The presentation layer only ever sees `snapshot()`; mutation goes
through the orchestrator, which owns exactly one `CreationSession`.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable
from typing import Any

from rpg_forge.models import (
    AgenticAction,
    CharacterDraft,
    DynamicPhaseState,
    Message,
    Mode,
    PendingImage,
    Phase,
    Role,
    SessionSnapshot,
    StreamingState,
    UniverseDraft,
    UniverseRecord,
)

logger = logging.getLogger(__name__)

# Throughput is recomputed every this many streamed tokens.
THROUGHPUT_SAMPLE_EVERY = 10


class CreationSession:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.reset()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Return every slot to its initial value."""
        self.session_id: str | None = None
        self.mode: Mode = "idle"
        self.phase: Phase = "gathering"
        self.phase_index = 0
        self._messages: list[Message] = []
        self.draft: UniverseDraft | CharacterDraft | None = None
        self.is_confirmation_mode = False
        self.is_generating = False
        self.validation_errors: list[str] = []
        self.validation_warnings: list[str] = []
        self._collected: dict[str, Any] = {}
        self._collected_history: list[dict[str, Any]] = []
        self.extraction_progress = 0
        self.selected_universe: UniverseRecord | None = None
        self.pending_image: PendingImage | None = None
        self.phase_state: DynamicPhaseState | None = None
        self.visible_actions: list[AgenticAction] = []
        self.suggestions: list[str] = []
        self.last_saved_id: str | None = None
        self._streaming = StreamingState()

    def set_mode(self, mode: Mode) -> None:
        if mode == "idle":
            self.reset()
            return
        self.mode = mode

    def set_phase(self, phase: Phase) -> None:
        if phase != self.phase:
            logger.debug("session %s phase %s → %s", self.session_id, self.phase, phase)
        self.phase = phase

    def set_validation(self, errors: list[str], warnings: list[str]) -> None:
        self.validation_errors = list(errors)
        self.validation_warnings = list(warnings)

    def clear_transient(self) -> None:
        """Drop everything tied to the entity just saved; keep the conversation."""
        self.draft = None
        self.is_confirmation_mode = False
        self.validation_errors = []
        self.validation_warnings = []
        self._collected = {}
        self._collected_history = []
        self.extraction_progress = 0
        self.pending_image = None
        self._streaming = StreamingState()

    # ------------------------------------------------------------------
    # Messages (append-only)
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def add_message(self, role: Role, content: str) -> Message:
        msg = Message(role=role, content=content)
        self._messages.append(msg)
        return msg

    def update_last_assistant_message(self, content: str) -> None:
        """Replace the newest message's content if it is an assistant message."""
        if not self._messages or self._messages[-1].role != "assistant":
            return
        self._messages[-1] = self._messages[-1].model_copy(update={"content": content})

    def last_user_message(self) -> str:
        for msg in reversed(self._messages):
            if msg.role == "user":
                return msg.content
        return ""

    def conversation_history(self, limit: int | None = None) -> list[dict[str, str]]:
        """Role/content pairs in log order, optionally only the last `limit`."""
        msgs = self._messages[-limit:] if limit else self._messages
        return [{"role": m.role, "content": m.content} for m in msgs]

    # ------------------------------------------------------------------
    # Collected data
    # ------------------------------------------------------------------

    @property
    def collected_data(self) -> dict[str, Any]:
        return copy.deepcopy(self._collected)

    @property
    def filled_fields(self) -> list[str]:
        return [k for k, v in self._collected.items() if v is not None]

    def merge_collected(self, fields: dict[str, Any]) -> None:
        """Overwrite-merge new values. Never deletes; None values are ignored."""
        updates = {k: v for k, v in fields.items() if v is not None}
        if not updates:
            return
        self._collected_history.append(copy.deepcopy(self._collected))
        merged = dict(self._collected)
        merged.update(copy.deepcopy(updates))
        self._collected = merged

    def undo_collected(self) -> bool:
        """Restore the collected data as it was before the last merge."""
        if not self._collected_history:
            return False
        self._collected = self._collected_history.pop()
        return True

    def clear_collected(self) -> None:
        self._collected = {}
        self._collected_history = []
        self.extraction_progress = 0

    def set_extraction_progress(self, score: int) -> None:
        self.extraction_progress = max(0, min(100, int(score)))

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    @property
    def streaming(self) -> StreamingState:
        return self._streaming.model_copy()

    @property
    def is_streaming(self) -> bool:
        return self._streaming.is_streaming

    def start_streaming(self) -> None:
        self._streaming = StreamingState(is_streaming=True, started_at=self._clock())

    def append_streaming_token(self, token: str) -> None:
        s = self._streaming
        if not s.is_streaming:
            return
        count = s.token_count + 1
        tps = s.tokens_per_second
        if count % THROUGHPUT_SAMPLE_EVERY == 0 and s.started_at is not None:
            elapsed = self._clock() - s.started_at
            if elapsed > 0:
                tps = count / elapsed
        self._streaming = s.model_copy(update={
            "buffer": s.buffer + token,
            "token_count": count,
            "tokens_per_second": tps,
        })

    def finish_streaming(self) -> Message | None:
        """Flush the buffer into one assistant message. Idempotent."""
        content = self._streaming.buffer
        self._streaming = StreamingState()
        if not content:
            return None
        return self.add_message("assistant", content)

    def cancel_streaming(self) -> None:
        self._streaming = StreamingState()

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            mode=self.mode,
            phase=self.phase,
            phase_index=self.phase_index,
            messages=self.messages,
            draft=self.draft.model_copy(deep=True) if self.draft else None,
            is_confirmation_mode=self.is_confirmation_mode,
            is_generating=self.is_generating,
            validation_errors=list(self.validation_errors),
            validation_warnings=list(self.validation_warnings),
            collected_data=self.collected_data,
            filled_fields=self.filled_fields,
            extraction_progress=self.extraction_progress,
            selected_universe=self.selected_universe,
            pending_image=self.pending_image,
            streaming=self.streaming,
            phase_state=self.phase_state,
            visible_actions=list(self.visible_actions),
            suggestions=list(self.suggestions),
            last_saved_id=self.last_saved_id,
        )
