"""Assistant-facing text in the two supported locales."""

from typing import Any

_TEXTS: dict[str, dict[str, str]] = {
    # Session start
    "welcome_universe": {
        "es": "🌌 ¡Vamos a crear un universo! Cuéntame tu idea: nombre, temática, "
              "estadísticas, rangos... Puedes decírmelo todo de una vez o paso a paso.",
        "en": "🌌 Let's create a universe! Tell me your idea: name, theme, stats, "
              "ranks... You can say it all at once or step by step.",
    },
    "welcome_character": {
        "es": "🧙 ¡Vamos a crear un personaje! Primero, ¿en qué universo vivirá?",
        "en": "🧙 Let's create a character! First, which universe will they live in?",
    },
    "welcome_action": {
        "es": "⚔️ Describe la acción que quieres realizar.",
        "en": "⚔️ Describe the action you want to take.",
    },
    "universes_available": {
        "es": "Universos disponibles: {names}",
        "en": "Available universes: {names}",
    },
    "no_universes": {
        "es": "Todavía no tienes universos. Crea uno primero para poder darle vida a un personaje.",
        "en": "You don't have any universes yet. Create one first to bring a character to life.",
    },
    "not_started": {
        "es": "Primero elige qué quieres crear: un universo o un personaje.",
        "en": "First choose what you want to create: a universe or a character.",
    },
    # Phases
    "phase_intro": {"es": "📍 Fase: **{phase}**", "en": "📍 Phase: **{phase}**"},
    "phase_back": {"es": "Volviendo a la fase: **{phase}**", "en": "Going back to: **{phase}**"},
    "phase_first": {"es": "Ya estás en la primera fase.", "en": "You are already at the first phase."},
    "phase_last": {"es": "Ya estás en la última fase.", "en": "You are already at the last phase."},
    # Draft review
    "draft_ready": {
        "es": "✨ ¡Tengo suficiente información! Así queda tu {entity}:",
        "en": "✨ I have enough information! Here is your {entity}:",
    },
    "errors_header": {"es": "⚠️ Antes de guardar hay que resolver:", "en": "⚠️ Before saving, please fix:"},
    "warnings_header": {"es": "ℹ️ Avisos:", "en": "ℹ️ Notes:"},
    "confirm_prompt": {
        "es": "¿Lo guardo así, o quieres ajustar algo?",
        "en": "Shall I save it like this, or do you want to adjust something?",
    },
    "confirm_blocked": {
        "es": "No puedo guardar todavía. Falta resolver:",
        "en": "I can't save yet. Still missing:",
    },
    "nothing_to_confirm": {
        "es": "Aún no hay nada que guardar. Sigamos completando los detalles.",
        "en": "There is nothing to save yet. Let's keep filling in the details.",
    },
    # Persistence
    "saved_universe": {
        "es": "🎉 ¡Universo **{name}** creado con éxito!",
        "en": "🎉 Universe **{name}** created successfully!",
    },
    "saved_character": {
        "es": "🎉 ¡Personaje **{name}** creado con éxito!",
        "en": "🎉 Character **{name}** created successfully!",
    },
    "save_failed": {
        "es": "❌ Hubo un error al guardar: {reason}. Puedes intentarlo de nuevo.",
        "en": "❌ There was an error while saving: {reason}. You can try again.",
    },
    "save_partial": {
        "es": "⚠️ Se guardó, pero no se pudieron añadir algunos detalles: {reason}",
        "en": "⚠️ Saved, but some details could not be added: {reason}",
    },
    # Draft lifecycle
    "adjust": {
        "es": "¿Qué te gustaría cambiar? Dime el campo y el nuevo valor.",
        "en": "What would you like to change? Tell me the field and the new value.",
    },
    "regenerate": {
        "es": "🔄 Descarto el borrador y mantengo lo que me contaste. ¿Quieres añadir o cambiar algo?",
        "en": "🔄 Draft discarded, your answers are kept. Want to add or change anything?",
    },
    "discard": {
        "es": "🗑️ Borrador descartado. Empecemos de nuevo: cuéntame tu idea.",
        "en": "🗑️ Draft discarded. Let's start over: tell me your idea.",
    },
    "undo_done": {"es": "↩️ Deshice el último cambio.", "en": "↩️ Undid the last change."},
    "undo_nothing": {"es": "No hay nada que deshacer.", "en": "There is nothing to undo."},
    # Failures
    "process_error": {
        "es": "❌ Hubo un error al procesar tu mensaje. ¿Podrías intentarlo de nuevo?",
        "en": "❌ There was an error processing your message. Could you try again?",
    },
    "streaming_error": {
        "es": "⚠️ La respuesta se interrumpió. ¿Podrías repetir tu último mensaje?",
        "en": "⚠️ The reply was interrupted. Could you repeat your last message?",
    },
    "unknown_action": {"es": "Acción no disponible: {action}", "en": "Action not available: {action}"},
    # Images
    "image_received_universe": {
        "es": "📷 ¡Imagen recibida! ¿La usamos como portada del universo o es un lugar?",
        "en": "📷 Image received! Should it be the universe cover, or is it a location?",
    },
    "image_received_character": {
        "es": "📷 ¡Imagen recibida! ¿La usamos como avatar de tu personaje?",
        "en": "📷 Image received! Should we use it as your character's avatar?",
    },
    "image_invalid": {
        "es": "Ese archivo no parece una imagen ({mime}).",
        "en": "That file does not look like an image ({mime}).",
    },
    "image_none_pending": {"es": "No hay ninguna imagen pendiente.", "en": "There is no pending image."},
    "image_bad_slot": {
        "es": "Esa imagen no puede usarse como {slot} aquí.",
        "en": "That image can't be used as {slot} here.",
    },
    "image_cover": {"es": "🖼️ Portada asignada.", "en": "🖼️ Cover assigned."},
    "image_location": {"es": "🗺️ Lugar **{name}** añadido.", "en": "🗺️ Location **{name}** added."},
    "image_avatar": {"es": "🧑 Avatar asignado.", "en": "🧑 Avatar assigned."},
    "image_discarded": {"es": "Imagen descartada.", "en": "Image discarded."},
    "unnamed_location": {"es": "Lugar sin nombre", "en": "Unnamed place"},
    # Universe selection
    "universe_selected": {
        "es": "🌌 Universo **{name}** seleccionado.",
        "en": "🌌 Universe **{name}** selected.",
    },
    "universe_not_found": {
        "es": "No encuentro ese universo.",
        "en": "I can't find that universe.",
    },
    # Validation
    "missing_name_universe": {
        "es": "Falta el nombre del universo: dime cómo se llamará.",
        "en": "The universe has no name: tell me what it is called.",
    },
    "missing_theme": {
        "es": "Falta la temática: indica un género (fantasía, sci-fi, cyberpunk...).",
        "en": "The theme is missing: pick a genre (fantasy, sci-fi, cyberpunk...).",
    },
    "missing_name_character": {
        "es": "Falta el nombre del personaje: dime cómo se llama.",
        "en": "The character has no name: tell me what they are called.",
    },
    "missing_universeId": {
        "es": "Falta el universo: elige uno de tus universos.",
        "en": "No universe chosen: pick one of your universes.",
    },
    "missing_field": {"es": "Falta {field}.", "en": "{field} is missing."},
    "warn_no_stats": {
        "es": "Sin estadísticas: puedes añadirlas describiéndolas (ej: fuerza, agilidad...).",
        "en": "No stats: you can add them by listing them (e.g. strength, agility...).",
    },
    "warn_no_cover": {
        "es": "Sin imagen de portada: puedes subir una cuando quieras.",
        "en": "No cover image: you can upload one any time.",
    },
    "warn_no_description": {
        "es": "Sin descripción detallada, se usará una descripción genérica.",
        "en": "Without a detailed description, a generic one will be used.",
    },
    "warn_generic_universe": {
        "es": "Sin tema ni descripción, se generará un universo genérico.",
        "en": "Without a theme or a description, a generic universe will be generated.",
    },
    "warn_rule_no_stats": {
        "es": "La regla \"{rule}\" no menciona ninguna estadística del universo.",
        "en": "The rule \"{rule}\" does not mention any of the universe's stats.",
    },
    "warn_character_no_stats": {
        "es": "El universo elegido no define estadísticas; el personaje empezará sin stats.",
        "en": "The chosen universe defines no stats; the character starts without any.",
    },
    "warn_no_avatar": {
        "es": "Sin avatar: puedes subir una imagen.",
        "en": "No avatar: you can upload an image.",
    },
    "warn_no_backstory": {
        "es": "Sin historia: un trasfondo le dará más vida.",
        "en": "No backstory: a background would bring them to life.",
    },
    "default_description": {"es": "Universo creado con IA", "en": "Universe created with AI"},
    # Draft summary labels
    "entity_universe": {"es": "universo", "en": "universe"},
    "entity_character": {"es": "personaje", "en": "character"},
    "label_name": {"es": "Nombre", "en": "Name"},
    "label_theme": {"es": "Temática", "en": "Theme"},
    "label_description": {"es": "Descripción", "en": "Description"},
    "label_stats": {"es": "Estadísticas", "en": "Stats"},
    "label_ranks": {"es": "Rangos", "en": "Ranks"},
    "label_points": {"es": "Puntos iniciales", "en": "Starting points"},
    "label_rules": {"es": "Reglas de progresión", "en": "Progression rules"},
    "label_locations": {"es": "Lugares", "en": "Locations"},
    "label_universe": {"es": "Universo", "en": "Universe"},
    "label_class": {"es": "Clase", "en": "Class"},
    "label_backstory": {"es": "Historia", "en": "Backstory"},
    "label_level": {"es": "Nivel", "en": "Level"},
}

_LISTS: dict[str, dict[str, list[str]]] = {
    "after_save": {
        "es": ["Crear otro universo", "Crear un personaje", "Volver al inicio"],
        "en": ["Create another universe", "Create a character", "Back to start"],
    },
    "image_slots_universe": {"es": ["Portada", "Lugar"], "en": ["Cover", "Location"]},
    "image_slots_character": {"es": ["Avatar"], "en": ["Avatar"]},
    "review": {
        "es": ["Confirmar y guardar", "Ajustar", "Regenerar"],
        "en": ["Confirm and save", "Adjust", "Regenerate"],
    },
}


def t(key: str, locale: str = "es", **params: Any) -> str:
    """Localized text for `key`, formatted with `params`. Falls back to Spanish."""
    entry = _TEXTS[key]
    text = entry.get(locale) or entry["es"]
    return text.format(**params) if params else text


def t_list(key: str, locale: str = "es") -> list[str]:
    entry = _LISTS[key]
    return list(entry.get(locale) or entry["es"])
