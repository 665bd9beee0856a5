"""Core domain models.

The session store, engines and orchestrator all exchange these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from rpg_forge.config import AUTO_CONFIRM_THRESHOLD

Locale = Literal["es", "en"]
Mode = Literal["idle", "universe", "character", "action"]
Phase = Literal["gathering", "generating", "reviewing", "adjusting", "confirmed"]
Role = Literal["system", "user", "assistant"]
TargetType = Literal["universe", "character"]
DetectedTarget = Literal["universe", "character", "unknown"]
FieldType = Literal["string", "number", "bool", "array", "object"]
ImageSlot = Literal["cover", "location", "avatar"]

ActionType = Literal[
    "text_input",
    "image_upload",
    "quick_select",
    "confirm_preview",
    "edit_field",
    "generate_more",
    "undo",
    "skip_phase",
    "regenerate",
]
Visibility = Literal["always", "contextual", "hidden"]

DEFAULT_INITIAL_POINTS = 60
DEFAULT_MAX_STAT_CHANGE = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class Message(BaseModel):
    """One entry of the append-only conversation log."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class PendingImage(BaseModel):
    """An uploaded image waiting for the user to pick its slot."""

    model_config = ConfigDict(frozen=True)

    data_url: str
    mime_type: str
    received_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class ExtractableField(BaseModel):
    """Declarative extraction rule for one entity field."""

    key: str
    name: str
    required: bool = False
    type: FieldType = "string"
    patterns: list[str] = Field(default_factory=list)  # first match wins
    keywords: dict[str, list[str]] = Field(default_factory=dict)  # locale → words
    transform: str | None = None
    validator: str | None = None
    default: Any = None
    weight: float = Field(default=1.0, gt=0)
    questions: dict[str, str] = Field(default_factory=dict)  # locale → follow-up


class BulkExtraction(BaseModel):
    """Result of mining one utterance for every field of a target type."""

    fields: dict[str, Any] = Field(default_factory=dict)
    completeness: int = Field(default=0, ge=0, le=100)
    extracted_fields: list[str] = Field(default_factory=list)
    missing_required: list[str] = Field(default_factory=list)
    missing_optional: list[str] = Field(default_factory=list)
    confidence: float = 0.0
    detected_target: DetectedTarget = "unknown"
    follow_up_question: str | None = None


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

class PhaseDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    name_en: str
    required_fields: tuple[str, ...] = ()
    optional_fields: tuple[str, ...] = ()
    weight: float = 1.0
    can_skip: bool = True

    def label(self, locale: str) -> str:
        return self.name_en if locale == "en" else self.name


class DynamicPhaseState(BaseModel):
    current_phase_id: str
    current_phase_index: int
    total_phases: int
    completeness: int = Field(ge=0, le=100)
    filled_fields: list[str] = Field(default_factory=list)
    pending_fields: list[str] = Field(default_factory=list)
    can_skip_to_confirmation: bool = False
    suggested_next_phase: str | None = None
    skippable_phases: list[str] = Field(default_factory=list)


class PhaseSuggestion(BaseModel):
    phase_id: str
    phase_index: int
    reason: str


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class StatDefinition(BaseModel):
    name: str
    abbreviation: str
    icon: str
    color: str
    min_value: int = 0
    max_value: int = 999
    category: str = "primary"


class AwakeningSystem(BaseModel):
    enabled: bool = True
    levels: list[str]
    thresholds: list[int]


class Location(BaseModel):
    name: str
    description: str = ""
    image_url: str


class ProgressionRule(BaseModel):
    """How in-story actions move stats: actions matching `keywords` raise `affected_stats`."""

    id: str
    description: str
    keywords: list[str] = Field(default_factory=list)
    affected_stats: list[str] = Field(default_factory=list)
    max_change_per_action: int = DEFAULT_MAX_STAT_CHANGE


class UniverseDraft(BaseModel):
    kind: Literal["universe"] = "universe"
    name: str = ""
    theme: str = ""
    description: str = ""
    stat_definitions: dict[str, StatDefinition] = Field(default_factory=dict)
    initial_points: int = DEFAULT_INITIAL_POINTS
    awakening_system: AwakeningSystem | None = None
    progression_rules: list[ProgressionRule] = Field(default_factory=list)
    cover_image: str | None = None
    locations: list[Location] = Field(default_factory=list)


class Progression(BaseModel):
    level: int = 1
    experience: int = 0
    awakening: str = "E"


class CharacterDraft(BaseModel):
    kind: Literal["character"] = "character"
    name: str = ""
    universe_id: str | None = None
    character_class: str = ""
    backstory: str = ""
    specialty: str = ""
    avatar: str | None = None
    background_color: str = "#1a1a2e"
    stats: dict[str, int] = Field(default_factory=dict)
    progression: Progression = Field(default_factory=Progression)


EntityDraft = UniverseDraft | CharacterDraft


class UniverseRecord(BaseModel):
    """A stored universe, as listed for character creation."""

    id: str
    name: str
    description: str = ""
    stat_definitions: dict[str, StatDefinition] = Field(default_factory=dict)
    initial_points: int = DEFAULT_INITIAL_POINTS
    awakening_system: AwakeningSystem | None = None
    progression_rules: list[ProgressionRule] = Field(default_factory=list)


class ValidationReport(BaseModel):
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class PersistResult(BaseModel):
    """Outcome of a store call: an identifier, or the reason there is none."""

    id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.id is not None and self.error is None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class AgenticAction(BaseModel):
    """Catalog entry. Pure data; `predicate` names a function in actions.PREDICATES."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: ActionType
    label: str
    label_en: str = ""
    icon: str = ""
    visibility: Visibility = "contextual"
    predicate: str | None = None
    priority: int = 0
    disabled: bool = False

    def localized_label(self, locale: str) -> str:
        return self.label_en if locale == "en" and self.label_en else self.label


class ActionContext(BaseModel):
    """Frozen snapshot that action predicates are evaluated against."""

    model_config = ConfigDict(frozen=True)

    mode: Mode = "idle"
    phase: Phase = "gathering"
    phase_id: str = ""
    phase_index: int = 0
    total_phases: int = 0
    completeness: int = 0
    filled_fields: tuple[str, ...] = ()
    pending_fields: tuple[str, ...] = ()
    has_generated_entity: bool = False
    is_confirmation_mode: bool = False
    validation_errors: tuple[str, ...] = ()
    validation_warnings: tuple[str, ...] = ()
    last_user_message: str = ""
    mentioned_image: bool = False
    has_pending_image: bool = False
    has_selected_universe: bool = False
    threshold: int = AUTO_CONFIRM_THRESHOLD
    locale: Locale = "es"


# ---------------------------------------------------------------------------
# Read-only view for the presentation layer
# ---------------------------------------------------------------------------

class StreamingState(BaseModel):
    is_streaming: bool = False
    buffer: str = ""
    token_count: int = 0
    started_at: float | None = None
    tokens_per_second: float = 0.0


class SessionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str | None
    mode: Mode
    phase: Phase
    phase_index: int
    messages: list[Message]
    draft: UniverseDraft | CharacterDraft | None = None
    is_confirmation_mode: bool
    is_generating: bool
    validation_errors: list[str]
    validation_warnings: list[str]
    collected_data: dict[str, Any]
    filled_fields: list[str]
    extraction_progress: int
    selected_universe: UniverseRecord | None
    pending_image: PendingImage | None
    streaming: StreamingState
    phase_state: DynamicPhaseState | None
    visible_actions: list[AgenticAction]
    suggestions: list[str]
    last_saved_id: str | None
