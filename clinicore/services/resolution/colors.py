"""Context-aware display colors for clinical codes and labels."""

import typing as t
from dataclasses import dataclass, field

DEFAULT_COLOR = "grey"


@dataclass(frozen=True)
class ColorPattern:
    keywords: tuple[str, ...]
    color: str
    exclude: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        return any(k in text for k in self.keywords) and not any(
            e in text for e in self.exclude
        )


@dataclass(frozen=True)
class ColorContext:
    patterns: tuple[ColorPattern, ...]
    default: str = DEFAULT_COLOR


def _context(*patterns: tuple[t.Any, ...]) -> ColorContext:
    return ColorContext(tuple(ColorPattern(*p) for p in patterns))


COLOR_MAPPINGS: dict[str, ColorContext] = {
    "visit_status": _context(
        (("active", "classified", "pending", "admitted"), "negative"),
        (("closed", "completed", "discharged"), "positive"),
        (("inactive", "cancelled", "suspended"), "grey"),
    ),
    "status": _context(
        (("inactive", "discharged", "completed", "dead"), "negative"),
        (("active", "alive", "admitted"), "positive"),
        (("cancelled", "suspended"), "warning"),
        (("transferred", "pending"), "info"),
    ),
    "vital_status": _context(
        (("active", "alive", "admitted"), "positive"),
        (("discharged", "completed", "inactive", "dead"), "negative"),
        (("cancelled", "suspended"), "warning"),
        (("transferred", "pending"), "info"),
    ),
    "gender": _context(
        (("male",), "blue", ("female",)),
        (("female",), "pink"),
        (("transsexual",), "purple"),
        (("intersex",), "orange"),
    ),
    "selection_answer": _context(
        (("yes", "positive", "present", "normal"), "positive"),
        (("no", "negative", "absent", "abnormal"), "negative"),
        (("unknown", "not applicable"), "warning"),
    ),
    "finding_answer": _context(
        (("yes", "positive", "present", "normal", "detected"), "positive"),
        (("no", "negative", "absent", "abnormal", "not detected"), "negative"),
        (("unknown", "not applicable"), "warning"),
    ),
    "severity": _context(
        (("mild", "low"), "positive"),
        (("moderate", "medium"), "warning"),
        (("severe", "high", "critical"), "negative"),
        (("normal",), "info"),
    ),
    "priority": _context(
        (("low",), "positive"),
        (("normal", "medium"), "info"),
        (("high",), "warning"),
        (("urgent", "critical", "emergency"), "negative"),
    ),
    "medication_status": _context(
        (("active", "current"), "positive"),
        (("discontinued", "stopped"), "negative"),
        (("suspended", "hold"), "warning"),
        (("completed",), "info"),
    ),
    "lab_result": _context(
        (("normal", "negative"), "positive"),
        (("abnormal", "positive"), "negative"),
        (("borderline", "inconclusive"), "warning"),
        (("pending",), "info"),
    ),
}

SIMPLE_CODE_COLORS: dict[str, str] = {
    "A": "positive",
    "I": "grey",
    "D": "negative",
    "C": "info",
    "X": "warning",
    "P": "info",
    "M": "blue",
    "F": "pink",
    "Y": "positive",
    "N": "negative",
    "U": "warning",
    "L": "positive",
    "H": "negative",
    "E": "negative",
}

CATEGORY_COLORS: dict[str, str] = {
    "vital": "red",
    "laboratory": "blue",
    "medication": "green",
    "symptom": "orange",
    "diagnosis": "purple",
    "procedure": "teal",
    "imaging": "indigo",
    "note": "grey",
}


@dataclass
class ColorMapper:
    """Maps text to a UI color name.

    Single-letter codes use a fixed table. Otherwise the first matching
    keyword pattern of ``context`` wins, and without a context the text is
    matched against clinical category names.
    """

    mappings: dict[str, ColorContext] = field(default_factory=lambda: dict(COLOR_MAPPINGS))
    code_colors: dict[str, str] = field(default_factory=lambda: dict(SIMPLE_CODE_COLORS))
    default_color: str = DEFAULT_COLOR

    def determine_color(self, text: t.Any, context: str | None = None) -> str:
        if not text and text != 0:
            return self.default_color
        lowered = str(text).strip().lower()

        if len(lowered) == 1 and lowered.upper() in self.code_colors:
            return self.code_colors[lowered.upper()]

        if context and context in self.mappings:
            mapping = self.mappings[context]
            for pattern in mapping.patterns:
                if pattern.matches(lowered):
                    return pattern.color
            return mapping.default

        return self.category_color(lowered)

    def category_color(self, category: str | None) -> str:
        if not category:
            return self.default_color
        lowered = category.lower()
        for name, color in CATEGORY_COLORS.items():
            if name in lowered:
                return color
        return self.default_color

    def observation_color(self, value: t.Any, value_type: str | None) -> str:
        """Color for an observation value given its value type code."""
        if not value and value != 0:
            return self.default_color
        match value_type:
            case "S":
                return self.determine_color(value, "selection_answer")
            case "F":
                return self.determine_color(value, "finding_answer")
            case "N" | "D":
                return "info"
        text = str(value).lower()
        if "status" in text:
            return self.determine_color(value, "status")
        if "result" in text:
            return self.determine_color(value, "lab_result")
        return self.determine_color(value)
