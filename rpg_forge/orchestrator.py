"""Creation orchestrator — drives one session from first message to saved entity.

Message flow:
  1. Append the user message (optimistically, before any round trip).
  2. Extract fields and merge them into the collected data (last write wins).
  3. Recompute phase state, quick replies and visible actions.
  4. Enough known?  → build draft → validate → confirmation mode (reviewing).
     Otherwise      → stream a clarifying reply from the text generator, then
                      advance the phase if the current one is complete.

Every failure is caught here and turned into an assistant message; only the
busy and streaming flags are rolled back, never the conversation.

Messages, confirmation and actions run one at a time behind a per-orchestrator
lock. Starting a new flow cancels the generation in flight, and work that
outlives its flow (same orchestrator, different session id) writes nothing.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import assert_never
from uuid import uuid4

from rpg_forge.actions import DEFAULT_ACTIONS, build_context, find_action, get_visible_actions
from rpg_forge.config import AUTO_CONFIRM_THRESHOLD, DEFAULT_LOCALE
from rpg_forge.drafts import build_entity_draft, summarize_draft, validate_entity_draft
from rpg_forge.errors import (
    GenerationCancelled,
    GenerationFailure,
    PersistenceFailure,
    StreamingFailure,
)
from rpg_forge.extraction import extract, load_field_rules
from rpg_forge.extraction.rules import FieldRules
from rpg_forge.llm import TextGenerator
from rpg_forge.models import (
    AgenticAction,
    EntityDraft,
    ImageSlot,
    Mode,
    PendingImage,
    SessionSnapshot,
    UniverseDraft,
    UniverseRecord,
    ValidationReport,
)
from rpg_forge.phases import (
    REVIEW_PHASE_ID,
    calculate_phase_state,
    get_phases,
    get_smart_suggestions,
    suggest_next_phase,
)
from rpg_forge.prompts import DEFAULT_SYSTEM_PROMPT, PromptError, render_prompt
from rpg_forge.prompts import build_context as build_prompt_context
from rpg_forge.session import CreationSession
from rpg_forge.storage import EntityStore
from rpg_forge.texts import t, t_list

logger = logging.getLogger(__name__)

_IMAGE_SLOTS: dict[str, tuple[str, ...]] = {
    "universe": ("cover", "location"),
    "character": ("avatar",),
}
# Draft fields sent with create_entity; everything else follows as an update.
_CORE_FIELDS: dict[str, set[str]] = {
    "universe": {"name", "theme", "description"},
    "character": {"name", "universe_id", "character_class", "backstory", "specialty", "stats"},
}


class CreationOrchestrator:
    """State machine for one creation flow. Owns exactly one CreationSession."""

    def __init__(
        self,
        llm: TextGenerator,
        store: EntityStore,
        *,
        session: CreationSession | None = None,
        locale: str = DEFAULT_LOCALE,
        threshold: int = AUTO_CONFIRM_THRESHOLD,
        rules: FieldRules | None = None,
        catalog: Sequence[AgenticAction] = DEFAULT_ACTIONS,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        history_limit: int = 10,
    ) -> None:
        self.session = session or CreationSession()
        self._llm = llm
        self._store = store
        self._locale = locale
        self._threshold = threshold
        self._rules = rules or load_field_rules()
        self._catalog = tuple(catalog)
        self._system_prompt = system_prompt
        self._history_limit = history_limit
        self._cancel = asyncio.Event()
        self._lock = asyncio.Lock()

    @property
    def locale(self) -> str:
        return self._locale

    @property
    def target(self) -> str | None:
        mode = self.session.mode
        return mode if mode in ("universe", "character") else None

    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_creation(self, mode: Mode) -> SessionSnapshot:
        s = self.session
        self._cancel.set()
        s.reset()
        if mode == "idle":
            return s.snapshot()

        s.set_mode(mode)
        s.session_id = f"crea_{uuid4().hex[:12]}"
        logger.info("session %s started mode=%s", s.session_id, mode)

        parts = [t(f"welcome_{mode}", self._locale)]
        if mode == "character":
            universes = self._list_universes()
            if universes:
                names = ", ".join(u.name for u in universes)
                parts.append(t("universes_available", self._locale, names=names))
            else:
                parts.append(t("no_universes", self._locale))
        phases = get_phases(mode)
        if phases:
            parts.append(t("phase_intro", self._locale, phase=phases[0].label(self._locale)))
        s.add_message("assistant", "\n\n".join(parts))
        self._refresh()
        return s.snapshot()

    def reset(self) -> SessionSnapshot:
        self._cancel.set()
        self.session.reset()
        return self.session.snapshot()

    def cancel(self) -> None:
        """Stop the generation in flight; its partial reply is discarded."""
        self._cancel.set()

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def process_message(self, text: str) -> SessionSnapshot:
        s = self.session
        text = text.strip()
        if not text:
            return s.snapshot()

        sid = s.session_id
        async with self._lock:
            if s.session_id != sid:
                logger.info("session %s ended before message could run; dropped", sid)
                return s.snapshot()
            s.add_message("user", text)
            if s.mode == "idle":
                s.add_message("assistant", t("not_started", self._locale))
                return s.snapshot()

            await self._guarded(lambda: self._handle_message(text))
        return s.snapshot()

    async def _handle_message(self, text: str) -> None:
        s = self.session
        sid = s.session_id
        target = self.target
        if target is None:
            await self._clarify(None)
            return

        result = extract(
            text, target, self._locale, s.collected_data,
            rules=self._rules, threshold=self._threshold,
        )
        fields = dict(result.fields)
        if target == "character" and s.selected_universe is None:
            universe = self._match_universe(text)
            if universe is not None:
                s.selected_universe = universe
                fields["universeId"] = universe.id
        s.merge_collected(fields)
        logger.debug(
            "session %s extracted %s (detected=%s)",
            s.session_id, list(fields), result.detected_target,
        )

        self._refresh()
        if self._ready_for_draft():
            self._enter_confirmation()
            return

        await self._clarify(self._follow_up_question())
        if s.session_id != sid:
            return
        self._advance_if_phase_complete()

    async def _clarify(self, question: str | None) -> None:
        """Stream a clarifying reply from the generator into the message log."""
        s = self.session
        sid = s.session_id
        messages = [
            {"role": "system", "content": self._render_system_prompt(question)},
            *s.conversation_history(self._history_limit),
        ]

        def on_token(token: str) -> None:
            if s.session_id == sid:
                s.append_streaming_token(token)

        s.start_streaming()
        try:
            final = await self._llm.generate(messages, on_token=on_token, cancel=self._cancel)
        except GenerationCancelled:
            raise
        except Exception as e:
            if s.session_id == sid and s.streaming.token_count:
                raise StreamingFailure(str(e)) from e
            raise

        if s.session_id != sid:
            logger.info("session %s replaced while generating; reply discarded", sid)
            return
        if not s.streaming.buffer and final.strip():
            s.append_streaming_token(final)
        if s.finish_streaming() is None and question:
            s.add_message("assistant", question)

    async def _guarded(self, work: Callable[[], Awaitable[None]]) -> None:
        """Run `work` with the busy flag set, converting every failure into a message."""
        s = self.session
        sid = s.session_id
        s.is_generating = True
        self._cancel = asyncio.Event()
        try:
            await work()
        except GenerationCancelled:
            logger.info("session %s generation cancelled", sid)
            if s.session_id == sid:
                s.cancel_streaming()
        except StreamingFailure as e:
            logger.warning("session %s stream broke off: %s", sid, e)
            s.cancel_streaming()
            s.add_message("assistant", t("streaming_error", self._locale))
        except (GenerationFailure, PromptError) as e:
            logger.warning("session %s generation failed: %s", sid, e)
            if s.session_id == sid:
                s.cancel_streaming()
                s.add_message("assistant", t("process_error", self._locale))
        except Exception:
            logger.exception("session %s: unexpected failure", sid)
            if s.session_id == sid:
                s.cancel_streaming()
                s.add_message("assistant", t("process_error", self._locale))
        finally:
            if s.session_id == sid:
                s.is_generating = False
                self._refresh()

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def build_entity_draft(self, target: str | None = None) -> EntityDraft:
        s = self.session
        draft = build_entity_draft(
            target or self._require_target(), s.collected_data,
            universe=s.selected_universe, locale=self._locale, rules=self._rules,
        )
        s.draft = draft
        return draft

    def validate_entity_draft(self, target: str | None = None) -> ValidationReport:
        s = self.session
        target = target or self._require_target()
        if s.draft is None:
            self.build_entity_draft(target)
        report = validate_entity_draft(target, s.draft, locale=self._locale, rules=self._rules)
        s.set_validation(report.errors, report.warnings)
        return report

    def preview(self) -> SessionSnapshot:
        """Build, validate and show the draft regardless of completeness."""
        if self.target is None:
            self.session.add_message("assistant", t("not_started", self._locale))
            return self.session.snapshot()
        self._enter_confirmation()
        return self.session.snapshot()

    def _enter_confirmation(self) -> None:
        s = self.session
        s.set_phase("generating")
        draft = self.build_entity_draft()
        report = self.validate_entity_draft()
        s.is_confirmation_mode = True
        s.phase_index = len(get_phases(self._require_target())) - 1
        s.set_phase("reviewing")
        logger.info(
            "session %s draft ready (%d errors, %d warnings)",
            s.session_id, len(report.errors), len(report.warnings),
        )
        s.add_message("assistant", self._review_message(draft, report))
        self._refresh()

    def _review_message(self, draft: EntityDraft, report: ValidationReport) -> str:
        universe = self.session.selected_universe
        parts = [
            t("draft_ready", self._locale, entity=t(f"entity_{draft.kind}", self._locale)),
            summarize_draft(draft, self._locale, universe.name if universe else None),
        ]
        if report.errors:
            parts.append("\n".join([t("errors_header", self._locale), *(f"- {e}" for e in report.errors)]))
        if report.warnings:
            parts.append("\n".join([t("warnings_header", self._locale), *(f"- {w}" for w in report.warnings)]))
        if report.ok:
            parts.append(t("confirm_prompt", self._locale))
        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def confirm(self) -> SessionSnapshot:
        async with self._lock:
            return await self._confirm()

    async def _confirm(self) -> SessionSnapshot:
        s = self.session
        sid = s.session_id
        target = self.target
        if target is None or s.draft is None or not s.is_confirmation_mode:
            s.add_message("assistant", t("nothing_to_confirm", self._locale))
            self._refresh()
            return s.snapshot()

        report = self.validate_entity_draft(target)
        if report.errors:
            lines = [t("confirm_blocked", self._locale), *(f"- {e}" for e in report.errors)]
            s.add_message("assistant", "\n".join(lines))
            self._refresh()
            return s.snapshot()

        draft = s.draft
        s.is_generating = True
        try:
            entity_id, partial_error = await self._persist(target, draft)
        except PersistenceFailure as e:
            logger.warning("session %s save failed: %s", sid, e)
            if s.session_id == sid:
                s.add_message("assistant", t("save_failed", self._locale, reason=str(e)))
            return s.snapshot()
        except Exception as e:
            logger.exception("session %s: store raised while saving", sid)
            if s.session_id == sid:
                s.add_message("assistant", t("save_failed", self._locale, reason=str(e)))
            return s.snapshot()
        finally:
            if s.session_id == sid:
                s.is_generating = False
                self._refresh()

        if s.session_id != sid:
            logger.info("session %s saved %s %s after the flow was replaced", sid, target, entity_id)
            return s.snapshot()
        s.clear_transient()
        s.last_saved_id = entity_id
        s.set_phase("confirmed")
        logger.info("session %s saved %s %s", s.session_id, target, entity_id)
        s.add_message("assistant", t(f"saved_{target}", self._locale, name=draft.name))
        if partial_error:
            s.add_message("assistant", t("save_partial", self._locale, reason=partial_error))
        self._refresh()
        return s.snapshot()

    async def _persist(self, target: str, draft: EntityDraft) -> tuple[str, str | None]:
        """Create the entity, then attach enrichments. Returns (id, update error)."""
        core_keys = _CORE_FIELDS[target]
        core = draft.model_dump(include=core_keys)
        if isinstance(draft, UniverseDraft) and not core.get("description"):
            core["description"] = t("default_description", self._locale)
        created = await self._store.create_entity(target, core)
        if not created.ok:
            raise PersistenceFailure(created.error or "no identifier returned")

        extras = draft.model_dump(exclude=core_keys | {"kind"})
        updated = await self._store.update_entity(target, created.id, extras)
        if not updated.ok:
            logger.warning("session %s: enrichment update failed: %s", self.session.session_id, updated.error)
            return created.id, updated.error or "update failed"
        return created.id, None

    def request_adjustment(self) -> SessionSnapshot:
        s = self.session
        s.is_confirmation_mode = False
        s.set_phase("adjusting")
        s.add_message("assistant", t("adjust", self._locale))
        self._refresh()
        return s.snapshot()

    def regenerate(self) -> SessionSnapshot:
        """Throw away the derived draft; the collected answers stay."""
        s = self.session
        s.draft = None
        s.set_validation([], [])
        s.is_confirmation_mode = False
        s.set_phase("gathering")
        self._leave_review()
        s.add_message("assistant", t("regenerate", self._locale))
        self._refresh()
        return s.snapshot()

    def discard_draft(self) -> SessionSnapshot:
        """Drop the draft and everything collected for it; start gathering over."""
        s = self.session
        s.draft = None
        s.set_validation([], [])
        s.is_confirmation_mode = False
        s.clear_collected()
        s.selected_universe = None
        s.pending_image = None
        s.phase_index = 0
        s.set_phase("gathering")
        s.add_message("assistant", t("discard", self._locale))
        self._refresh()
        return s.snapshot()

    def undo(self) -> SessionSnapshot:
        s = self.session
        if not s.undo_collected():
            s.add_message("assistant", t("undo_nothing", self._locale))
            self._refresh()
            return s.snapshot()
        collected = s.collected_data
        if s.selected_universe is not None and collected.get("universeId") != s.selected_universe.id:
            s.selected_universe = None
        if s.draft is not None:
            s.draft = None
            s.set_validation([], [])
            s.is_confirmation_mode = False
            s.set_phase("gathering")
            self._leave_review()
        s.add_message("assistant", t("undo_done", self._locale))
        self._refresh()
        return s.snapshot()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def advance_phase(self) -> SessionSnapshot:
        s = self.session
        target = self.target
        if target is None:
            s.add_message("assistant", t("not_started", self._locale))
            return s.snapshot()
        phases = get_phases(target)
        if s.phase_index >= len(phases) - 1:
            s.add_message("assistant", t("phase_last", self._locale))
            self._refresh()
            return s.snapshot()
        if phases[s.phase_index + 1].id == REVIEW_PHASE_ID:
            self._enter_confirmation()
            return s.snapshot()
        self._move_to(s.phase_index + 1)
        return s.snapshot()

    def previous_phase(self) -> SessionSnapshot:
        s = self.session
        target = self.target
        if target is None:
            s.add_message("assistant", t("not_started", self._locale))
            return s.snapshot()
        if s.phase_index == 0:
            s.add_message("assistant", t("phase_first", self._locale))
            self._refresh()
            return s.snapshot()
        if s.is_confirmation_mode:
            s.is_confirmation_mode = False
            s.set_phase("gathering")
        self._move_to(s.phase_index - 1, back=True)
        return s.snapshot()

    def _move_to(self, index: int, *, back: bool = False) -> None:
        s = self.session
        phase = get_phases(self._require_target())[index]
        logger.info("session %s phase %d → %d (%s)", s.session_id, s.phase_index, index, phase.id)
        s.phase_index = index
        key = "phase_back" if back else "phase_intro"
        s.add_message("assistant", t(key, self._locale, phase=phase.label(self._locale)))
        self._refresh()

    def _advance_if_phase_complete(self) -> None:
        s = self.session
        target = self.target
        if target is None:
            return
        phases = get_phases(target)
        idx = s.phase_index
        if not set(phases[idx].required_fields) <= set(s.filled_fields):
            return
        suggestion = suggest_next_phase(
            target, idx, s.filled_fields, rules=self._rules, threshold=self._threshold,
        )
        # Review is only entered through a draft, never opportunistically.
        new_idx = min(max(suggestion.phase_index, idx + 1), len(phases) - 2)
        if new_idx > idx:
            self._move_to(new_idx)

    def _leave_review(self) -> None:
        s = self.session
        phases = get_phases(self.target or "")
        if phases and s.phase_index >= len(phases) - 1:
            s.phase_index = max(0, len(phases) - 2)

    # ------------------------------------------------------------------
    # Universe selection and images
    # ------------------------------------------------------------------

    def select_universe(self, universe_id: str) -> SessionSnapshot:
        s = self.session
        universe = None
        if self.target == "character":
            universe = next((u for u in self._list_universes() if u.id == universe_id), None)
        if universe is None:
            logger.warning("session %s: universe %r not selectable", s.session_id, universe_id)
            s.add_message("assistant", t("universe_not_found", self._locale))
            self._refresh()
            return s.snapshot()

        s.selected_universe = universe
        s.merge_collected({"universeId": universe.id})
        s.add_message("assistant", t("universe_selected", self._locale, name=universe.name))
        self._refresh()
        if self._ready_for_draft():
            self._enter_confirmation()
        else:
            self._advance_if_phase_complete()
        return s.snapshot()

    def upload_image(self, data: bytes, mime_type: str) -> SessionSnapshot:
        """Hold an image as pending until the user says what it is for."""
        s = self.session
        target = self.target
        if target is None:
            s.add_message("assistant", t("not_started", self._locale))
            return s.snapshot()
        if not mime_type.startswith("image/") or not data:
            s.add_message("assistant", t("image_invalid", self._locale, mime=mime_type or "?"))
            self._refresh()
            return s.snapshot()

        encoded = base64.b64encode(data).decode("ascii")
        s.pending_image = PendingImage(data_url=f"data:{mime_type};base64,{encoded}", mime_type=mime_type)
        s.add_message("assistant", t(f"image_received_{target}", self._locale))
        self._refresh()
        return s.snapshot()

    def assign_pending_image(
        self, slot: ImageSlot, name: str | None = None, description: str | None = None,
    ) -> SessionSnapshot:
        s = self.session
        target = self.target
        pending = s.pending_image
        if pending is None or target is None:
            s.add_message("assistant", t("image_none_pending", self._locale))
            self._refresh()
            return s.snapshot()
        if slot not in _IMAGE_SLOTS[target]:
            s.add_message("assistant", t("image_bad_slot", self._locale, slot=slot))
            self._refresh()
            return s.snapshot()

        match slot:
            case "cover":
                s.merge_collected({"coverImage": pending.data_url})
                s.add_message("assistant", t("image_cover", self._locale))
            case "location":
                label = (name or "").strip() or t("unnamed_location", self._locale)
                locations = list(s.collected_data.get("locations") or [])
                locations.append({
                    "name": label,
                    "description": (description or "").strip(),
                    "image_url": pending.data_url,
                })
                s.merge_collected({"locations": locations})
                s.add_message("assistant", t("image_location", self._locale, name=label))
            case "avatar":
                s.merge_collected({"avatar": pending.data_url})
                s.add_message("assistant", t("image_avatar", self._locale))
            case _:
                assert_never(slot)
        s.pending_image = None

        if s.draft is not None:
            self.build_entity_draft(target)
            self.validate_entity_draft(target)
        self._refresh()
        return s.snapshot()

    def discard_pending_image(self) -> SessionSnapshot:
        s = self.session
        if s.pending_image is None:
            s.add_message("assistant", t("image_none_pending", self._locale))
        else:
            s.pending_image = None
            s.add_message("assistant", t("image_discarded", self._locale))
        self._refresh()
        return s.snapshot()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def perform_action(self, action_id: str) -> SessionSnapshot:
        async with self._lock:
            return await self._perform_action(action_id)

    async def _perform_action(self, action_id: str) -> SessionSnapshot:
        s = self.session
        action = find_action(self._catalog, action_id)
        if action is None or action.disabled or action not in s.visible_actions:
            s.add_message("assistant", t("unknown_action", self._locale, action=action_id))
            self._refresh()
            return s.snapshot()

        match action.type:
            case "text_input" | "image_upload" | "quick_select":
                # Input widgets; the presentation layer collects the value.
                pass
            case "confirm_preview":
                if s.is_confirmation_mode:
                    await self._confirm()
                else:
                    self.preview()
            case "edit_field":
                self.request_adjustment()
            case "generate_more":
                await self._guarded(lambda: self._clarify(self._follow_up_question()))
            case "undo":
                self.undo()
            case "skip_phase":
                self.advance_phase()
            case "regenerate":
                self.regenerate()
            case _:
                assert_never(action.type)
        return s.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _refresh(self) -> None:
        """Recompute phase state, quick replies and visible actions."""
        s = self.session
        target = self.target
        if target is None:
            s.phase_state = None
            s.suggestions = []
        else:
            state = calculate_phase_state(
                target, s.filled_fields, s.phase_index,
                rules=self._rules, threshold=self._threshold,
            )
            s.phase_state = state
            s.set_extraction_progress(state.completeness)
            if s.phase == "confirmed":
                s.suggestions = t_list("after_save", self._locale)
            elif s.pending_image is not None:
                s.suggestions = t_list(f"image_slots_{target}", self._locale)
            elif s.is_confirmation_mode:
                s.suggestions = t_list("review", self._locale)
            else:
                s.suggestions = get_smart_suggestions(
                    target, state.current_phase_id, s.filled_fields, s.last_user_message(),
                    locale=self._locale, rules=self._rules, threshold=self._threshold,
                )
        context = build_context(
            s, s.phase_state, s.draft, locale=self._locale, threshold=self._threshold,
        )
        s.visible_actions = get_visible_actions(self._catalog, context)

    def _ready_for_draft(self) -> bool:
        state = self.session.phase_state
        return state is not None and state.can_skip_to_confirmation

    def _follow_up_question(self) -> str | None:
        target = self.target
        if target is None:
            return None
        # An empty utterance scores only what is already collected.
        return extract(
            "", target, self._locale, self.session.collected_data,
            rules=self._rules, threshold=self._threshold,
        ).follow_up_question

    def _render_system_prompt(self, question: str | None) -> str:
        s = self.session
        target = self.target
        phases = get_phases(target) if target else ()
        state = s.phase_state
        phase_name = phases[s.phase_index].label(self._locale) if phases else ""
        context = build_prompt_context(
            target or s.mode, self._locale, phase_name, s.phase_index, len(phases),
            s.collected_data, list(state.pending_fields) if state else [], question,
        )
        return render_prompt(self._system_prompt, context)

    def _list_universes(self) -> list[UniverseRecord]:
        try:
            return self._store.list_universes()
        except OSError as e:
            logger.warning("cannot list universes: %s", e)
            return []

    def _match_universe(self, text: str) -> UniverseRecord | None:
        for universe in self._list_universes():
            if re.search(rf"(?<!\w){re.escape(universe.name)}(?!\w)", text, re.IGNORECASE):
                return universe
        return None

    def _require_target(self) -> str:
        target = self.target
        if target is None:
            raise ValueError(f"Mode {self.session.mode!r} has no entity target")
        return target
