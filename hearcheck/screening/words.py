"""Speech test vocabularies: spondee-like target words and distractors."""

from __future__ import annotations

from typing import Dict, Tuple

WORDS: Dict[str, Tuple[str, ...]] = {
    "en": (
        "airplane", "armchair", "baseball", "birthday", "sidewalk",
        "cowboy", "cupcake", "daylight", "doorbell", "downtown",
        "eardrum", "eyebrow", "football", "goodbye", "grandson",
        "hardware", "headlight", "hotdog", "iceberg", "inkwell",
        "mushroom", "northwest", "oatmeal", "padlock", "pancake",
        "playground", "railroad", "rainbow", "scarecrow", "schoolboy",
        "skateboard", "snowman", "stairway", "sunset", "toothbrush",
        "bathtub", "backyard", "campfire", "cookbook", "doughnut",
    ),
    "he": (
        "מטוס", "כיסא", "כדור", "יומולדת", "מדרכה",
        "בוקר", "עוגה", "אור", "פעמון", "מרכז",
        "אוזן", "גבה", "כדורגל", "להתראות", "נכד",
        "חומרה", "פנס", "נקניק", "קרחון", "דיו",
        "פטריה", "צפון", "שיבולת", "מנעול", "לביבה",
        "מגרש", "רכבת", "קשת", "דחליל", "תלמיד",
        "סקייטבורד", "איש שלג", "מדרגות", "שקיעה", "מברשת",
        "אופניים", "חצר", "מדורה", "ספר בישול", "סופגנייה",
    ),
}

DISTRACTORS: Dict[str, Tuple[str, ...]] = {
    "en": (
        "window", "pencil", "computer", "keyboard", "outside",
        "garden", "chicken", "blanket", "fireplace", "mailbox",
        "notebook", "popcorn", "strawberry", "butterfly", "doorway",
        "highway", "blackboard", "goldfish", "grapefruit", "lipstick",
        "watchdog", "teaspoon", "mousetrap", "moonlight", "rosebud",
        "workshop", "bedtime", "fingernail", "lighthouse", "earthquake",
    ),
    "he": (
        "חלון", "עיפרון", "מחשב", "מקלדת", "בחוץ",
        "גן", "עוף", "שמיכה", "אח", "תיבת דואר",
        "מחברת", "פופקורן", "תות", "פרפר", "פתח",
        "כביש מהיר", "לוח", "דג זהב", "אשכולית", "שפתון",
        "כלב שמירה", "כפית", "מלכודת עכברים", "אור ירח", "ניצן ורד",
        "בית מלאכה", "שעת שינה", "ציפורן", "מגדלור", "רעידת אדמה",
    ),
}

LANGUAGES: Tuple[str, ...] = tuple(WORDS)


def vocabulary(language: str) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """(words, distractors) for *language*; KeyError for an unknown code."""
    if language not in WORDS:
        raise KeyError(f"No speech vocabulary for language {language!r}")
    return WORDS[language], DISTRACTORS[language]
