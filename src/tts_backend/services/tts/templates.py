"""
Spoken-response templates for common assistant intents.

Each intent has a few phrasings per language so repeated answers do not
sound canned, plus the playback mode (brief or full) the response should
use. Placeholders use ``{{name}}`` and are filled from a data mapping.

Variant choice goes through ``TemplateRenderer``, whose random source is
injected: pass ``random.Random(seed)`` to make the choice reproducible.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from ...schemas.tts import TTSMode

DEFAULT_LANGUAGE = "en"


class TemplateNotFoundError(ValueError):
    """Raised when an intent or one of its languages has no template."""


@dataclass(frozen=True)
class SpeechTemplate:
    intent: str
    mode: TTSMode
    variants: Mapping[str, Sequence[str]]
    placeholders: tuple[str, ...] = field(default_factory=tuple)


TEMPLATES: dict[str, SpeechTemplate] = {
    template.intent: template
    for template in (
        SpeechTemplate(
            intent="greeting",
            mode="brief",
            variants={
                "en": (
                    "Hello! How can I help you today?",
                    "Good day! What can I do for you?",
                    "Welcome! I'm here to assist you.",
                ),
                "es": (
                    "¡Hola! ¿Cómo puedo ayudarte hoy?",
                    "¡Buen día! ¿En qué puedo ayudarte?",
                    "¡Bienvenido! Estoy aquí para asistirte.",
                ),
            },
        ),
        SpeechTemplate(
            intent="farewell",
            mode="brief",
            variants={
                "en": (
                    "Goodbye! Have a wonderful day.",
                    "Take care! See you soon.",
                    "Until next time! Stay well.",
                ),
                "es": (
                    "¡Adiós! Que tengas un día maravilloso.",
                    "¡Cuídate! Hasta pronto.",
                    "¡Hasta la próxima! Que estés bien.",
                ),
            },
        ),
        SpeechTemplate(
            intent="confirm_reservation",
            mode="full",
            placeholders=("activity_name", "date", "time", "location"),
            variants={
                "en": (
                    "Your reservation for {{activity_name}} is confirmed on {{date}} at {{time}} in {{location}}.",
                    "All set! You're booked for {{activity_name}} on {{date}} at {{time}} at {{location}}.",
                    "Confirmed! {{activity_name}} on {{date}} at {{time}}, {{location}}. See you there!",
                ),
                "es": (
                    "Tu reserva para {{activity_name}} está confirmada el {{date}} a las {{time}} en {{location}}.",
                    "¡Listo! Tienes reserva para {{activity_name}} el {{date}} a las {{time}} en {{location}}.",
                    "¡Confirmado! {{activity_name}} el {{date}} a las {{time}}, {{location}}. ¡Nos vemos allí!",
                ),
            },
        ),
        SpeechTemplate(
            intent="search_result_short",
            mode="brief",
            placeholders=("count",),
            variants={
                "en": (
                    "I found {{count}} activities for you.",
                    "There are {{count}} activities available.",
                    "{{count}} activities match your search.",
                ),
                "es": (
                    "Encontré {{count}} actividades para ti.",
                    "Hay {{count}} actividades disponibles.",
                    "{{count}} actividades coinciden con tu búsqueda.",
                ),
            },
        ),
        SpeechTemplate(
            intent="search_result_long",
            mode="full",
            placeholders=("count", "category", "location"),
            variants={
                "en": (
                    "I found {{count}} {{category}} activities in {{location}}. Would you like to hear the details?",
                    "Great news! There are {{count}} {{category}} activities available in {{location}}. Shall I describe them?",
                    "{{count}} {{category}} activities are happening in {{location}}. Let me know if you'd like more information.",
                ),
                "es": (
                    "Encontré {{count}} actividades de {{category}} en {{location}}. ¿Te gustaría escuchar los detalles?",
                    "¡Buenas noticias! Hay {{count}} actividades de {{category}} disponibles en {{location}}. ¿Las describo?",
                    "{{count}} actividades de {{category}} están disponibles en {{location}}. Avísame si quieres más información.",
                ),
            },
        ),
        SpeechTemplate(
            intent="activity_details_brief",
            mode="brief",
            placeholders=("activity_name", "date", "time"),
            variants={
                "en": (
                    "{{activity_name}} on {{date}} at {{time}}.",
                    "{{activity_name}}, {{date}}, {{time}}.",
                    "It's {{activity_name}} on {{date}} at {{time}}.",
                ),
                "es": (
                    "{{activity_name}} el {{date}} a las {{time}}.",
                    "{{activity_name}}, {{date}}, {{time}}.",
                    "Es {{activity_name}} el {{date}} a las {{time}}.",
                ),
            },
        ),
        SpeechTemplate(
            intent="activity_details_full",
            mode="full",
            placeholders=("activity_name", "date", "time", "location", "description"),
            variants={
                "en": (
                    "{{activity_name}} takes place on {{date}} at {{time}} in {{location}}. {{description}}",
                    "Let me tell you about {{activity_name}}. It's on {{date}} at {{time}} at {{location}}. {{description}}",
                    "Here are the details: {{activity_name}}, {{date}}, {{time}}, {{location}}. {{description}}",
                ),
                "es": (
                    "{{activity_name}} se realiza el {{date}} a las {{time}} en {{location}}. {{description}}",
                    "Déjame contarte sobre {{activity_name}}. Es el {{date}} a las {{time}} en {{location}}. {{description}}",
                    "Aquí están los detalles: {{activity_name}}, {{date}}, {{time}}, {{location}}. {{description}}",
                ),
            },
        ),
        SpeechTemplate(
            intent="ask_confirmation",
            mode="brief",
            placeholders=("action",),
            variants={
                "en": (
                    "Would you like me to {{action}}?",
                    "Should I {{action}}?",
                    "Do you want me to {{action}}?",
                ),
                "es": (
                    "¿Te gustaría que {{action}}?",
                    "¿Debo {{action}}?",
                    "¿Quieres que {{action}}?",
                ),
            },
        ),
        SpeechTemplate(
            intent="error_generic",
            mode="brief",
            placeholders=("error_type",),
            variants={
                "en": (
                    "I'm sorry, I couldn't complete that. Please try again.",
                    "There was a problem. Could you try that again?",
                    "Something went wrong. Let's try once more.",
                ),
                "es": (
                    "Lo siento, no pude completar eso. Por favor, intenta de nuevo.",
                    "Hubo un problema. ¿Podrías intentarlo de nuevo?",
                    "Algo salió mal. Intentemos una vez más.",
                ),
            },
        ),
    )
}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def _variants(intent: str, language: str) -> Sequence[str]:
    template = TEMPLATES.get(intent)
    if template is None:
        raise TemplateNotFoundError(f"Template not found: {intent}")
    variants = template.variants.get(language)
    if not variants:
        raise TemplateNotFoundError(
            f'No variants found for intent "{intent}" in language "{language}"'
        )
    return variants


def fill_placeholders(text: str, data: Mapping[str, object] | None = None) -> str:
    """Replace ``{{key}}`` with ``data[key]``; unknown keys stay as written."""

    if not data:
        return text

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        return str(data[key]) if key in data else match.group(0)

    return _PLACEHOLDER.sub(_replace, text)


def render_template(
    intent: str,
    language: str = DEFAULT_LANGUAGE,
    data: Mapping[str, object] | None = None,
    variant_index: int = 0,
) -> str:
    """Render one specific variant; an out-of-range index uses the first."""

    variants = _variants(intent, language)
    if not 0 <= variant_index < len(variants):
        variant_index = 0
    return fill_placeholders(variants[variant_index], data)


def get_template_mode(intent: str) -> TTSMode:
    template = TEMPLATES.get(intent)
    return template.mode if template else "brief"


def get_available_intents() -> list[str]:
    return list(TEMPLATES)


class TemplateRenderer:
    """Render templates with a randomly chosen variant."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def random_variant(self, intent: str, language: str = DEFAULT_LANGUAGE) -> str:
        return self._rng.choice(list(_variants(intent, language)))

    def render(
        self,
        intent: str,
        language: str = DEFAULT_LANGUAGE,
        data: Mapping[str, object] | None = None,
    ) -> str:
        return fill_placeholders(self.random_variant(intent, language), data)


def truncate_list(
    items: Sequence[str], max_items: int = 3, language: str = DEFAULT_LANGUAGE
) -> str:
    """Speak at most ``max_items`` entries and summarize how many were left out."""

    if max_items < 1:
        raise ValueError("max_items must be at least 1")
    if not items:
        return ""

    conjunction = " y " if language == "es" else " and "
    shown = list(items[:max_items])
    remaining = len(items) - len(shown)
    if remaining <= 0:
        if len(shown) == 1:
            return shown[0]
        return ", ".join(shown[:-1]) + conjunction + shown[-1]

    if language == "es":
        more = f"{remaining} más"
    else:
        more = f"{remaining} more"
    return ", ".join(shown) + conjunction + more


__all__ = [
    "SpeechTemplate",
    "TEMPLATES",
    "TemplateNotFoundError",
    "TemplateRenderer",
    "fill_placeholders",
    "get_available_intents",
    "get_template_mode",
    "render_template",
    "truncate_list",
]
