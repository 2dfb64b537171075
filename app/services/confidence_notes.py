# app/services/confidence_notes.py

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Sequence

from app.services.context import WardrobeItemLike, WeatherContext, days_since_worn

logger = logging.getLogger(__name__)

FALLBACK_NOTE = "You look amazing today! Youre ready and confident."
TEMPLATE_FALLBACK_NOTE = "You look amazing in everything you wear. Today will be no exception!"

NOTE_TEMPLATES = (
    "This combination brings out your best features, you'll feel unstoppable today!",
    "Perfect choice! This outfit has that effortless confidence you're known for.",
    "You've worn similar combinations before and always looked amazing. Today will be no different!",
    "That {item} hasn't seen the light of day in a while, time to remind everyone why it's special!",
    "Bringing back this {item} is going to turn heads. You have such great taste!",
    "Perfect for today's {weather}, you'll be comfortable and stylish all day long.",
    "This outfit is made for {weather} weather. You'll feel confident and prepared!",
    "Last time you wore this {item}, you got {compliments} compliments. Ready for more?",
    "This combination scored a {rating}/5 last time, let's see if we can beat that record!",
)

TAGLINES = (
    "Your style tells a story.",
    "Own your look today!",
    "Confidence looks good on you!",
    "Let your style lead the way.",
    "Your look is pure you.",
)
PLAIN_TAGLINES = (
    "your style tells a story",
    "own your look today",
    "confidence looks good on you",
    "let your style lead the way",
    "your look is pure you",
)
EMOJIS = ("✨", "💫", "☀️", "💼", "🎨")

NOTE_STYLES = ("encouraging", "witty", "poetic", "friendly")

HIGH_RATING = 4.5
NEGLECTED_DAYS = 30
MIN_NOTE_LENGTH = 35

_UNSAFE_CHARS = re.compile(r"[^\w\s.,!?'-]")


def outfit_hash(items: Sequence[WardrobeItemLike]) -> int:
    """Stable 32-bit string hash of the joined item ids."""
    h = 0
    for ch in "|".join(str(i.id) for i in items):
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


# -------------------------
# TEMPLATE NOTES
# -------------------------

def _fill_template(template: str, items: Sequence[WardrobeItemLike], weather: WeatherContext | None) -> str:
    note = template
    featured = items[0] if items else None

    if "{item}" in note and featured is not None and featured.category:
        note = note.replace("{item}", featured.category)
    if "{weather}" in note:
        note = note.replace("{weather}", weather.condition if weather else "perfect")
    if "{compliments}" in note:
        compliments = int(featured.compliments_received or 0) if featured is not None else 0
        note = note.replace("{compliments}", str(max(1, compliments)))
    if "{rating}" in note:
        ratings = [float(i.average_rating or 0) for i in items]
        rating = sum(ratings) / len(ratings) if ratings else 0.0
        note = note.replace("{rating}", f"{rating or 3.5:.1f}")
    return note


def generate_template_note(
    items: Sequence[WardrobeItemLike], weather: WeatherContext | None = None
) -> str:
    try:
        template = NOTE_TEMPLATES[outfit_hash(items) % len(NOTE_TEMPLATES)]
        return _fill_template(template, items, weather)
    except Exception:
        logger.exception("Failed to generate template confidence note")
        return TEMPLATE_FALLBACK_NOTE


# -------------------------
# STYLED NOTES
# -------------------------

def generate_confidence_note(
    items: Sequence[WardrobeItemLike],
    *,
    weather: WeatherContext | None = None,
    style: str | None = None,
    note_style: str | None = None,
    preferred_styles: Sequence[str] = (),
    confidence_score: float | None = None,
    now: datetime | None = None,
) -> str:
    """
    Build a confidence note from what we know about the pieces.

    `note_style` is the user's saved tone (encouraging, witty, poetic, friendly)
    and wins over `style`. Passing `style` also appends a tagline with an emoji;
    without it the tagline is plain text joined with a comma.
    """
    now = now or datetime.now(timezone.utc)
    try:
        tone = (note_style or "").strip() or "encouraging"

        had_high_ratings = any(float(i.average_rating or 0) >= HIGH_RATING for i in items)
        neglected = any(days_since_worn(i, now) > NEGLECTED_DAYS for i in items)

        colors: list[str] = []
        for item in items:
            for color in item.colors or []:
                if color and color not in colors:
                    colors.append(color)
        descriptive = (
            f"The {' and '.join(colors)} palette feels elegant and confident." if colors else ""
        )

        if had_high_ratings:
            base = "You loved how this felt last time, lean into that confidence today."
        elif neglected:
            base = "It's time to rediscover this piece you haven't worn in a while and let it shine again."
        else:
            base = "You're ready for the day, calm, poised, and absolutely you."

        if tone == "witty":
            note = f"{base} You're set to turn heads, subtly!"
        elif tone == "poetic":
            note = (
                f"{base} {descriptive or 'Your look balances ease and intention.'} "
                "Move through the day with quiet brilliance."
            )
        else:
            note = f"{base} {descriptive}".strip()

        style_word = next((str(s).lower() for s in preferred_styles if s), "")
        if style_word:
            note = f"{note} Your {style_word} style shines through."

        high_confidence = had_high_ratings or (confidence_score is not None and confidence_score > 4.5)
        if high_confidence and tone != "poetic":
            note = f"{note} You look amazing, absolutely ready."

        if weather is not None and weather.condition == "rainy":
            note += " This choice suits today's rainy mood without sacrificing comfort."
        elif weather is not None and weather.condition == "sunny":
            note += " Bright weather pairs well with this confident look."

        note = _UNSAFE_CHARS.sub("", note.strip())

        h = outfit_hash(items)
        if style:
            note = f"{note} {TAGLINES[h % len(TAGLINES)]} {EMOJIS[h % len(EMOJIS)]}".strip()
            if len(note) < MIN_NOTE_LENGTH:
                note += " Youve got this."
        else:
            note = f"{note}, {PLAIN_TAGLINES[h % len(PLAIN_TAGLINES)]}"
        return note
    except Exception:
        logger.exception("Failed to generate confidence note")
        return FALLBACK_NOTE


def generate_personalized_note(
    items: Sequence[WardrobeItemLike],
    *,
    weather: WeatherContext | None = None,
    note_style: str | None = None,
    preferred_styles: Sequence[str] = (),
    now: datetime | None = None,
) -> str:
    """Template note for the default tones, styled note for witty and poetic."""
    if note_style in ("witty", "poetic"):
        return generate_confidence_note(
            items,
            weather=weather,
            style="personalized",
            note_style=note_style,
            preferred_styles=preferred_styles,
            now=now,
        )
    note = generate_template_note(items, weather)
    if note:
        return note
    return generate_confidence_note(items, weather=weather, style="personalized", now=now)
