"""
Compatibility gate for Hunt Alerts.

Detects secondary vehicle attributes (series family, engine family, cab
type, body type) from free text using signal vocabularies, then compares
them with what the hunt requires.

Gates are asymmetric:
- A confidently detected *different* value is a hard reject. The candidate
  is discarded and can never reach WATCH.
- A required value that cannot be detected, or a missing must-have token
  in strict mode, is a soft reject. The candidate may still be WATCH but
  not BUY.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from .models import Candidate, Confidence, Hunt

logger = logging.getLogger(__name__)

# =============================================================================
# SIGNAL VOCABULARIES
# =============================================================================
# A trailing "*" marks a prefix signal: it may be followed by more characters
# (engine codes such as VDJ79, GDJ76). All other signals need a word boundary
# on both sides.

SERIES_SIGNALS = {
    "LC70": (
        "LC70", "LC76", "LC78", "LC79", "LC 70", "LC 76", "LC 78", "LC 79",
        "70 SERIES", "76 SERIES", "78 SERIES", "79 SERIES",
        "70-SERIES", "76-SERIES", "78-SERIES", "79-SERIES",
        "70SERIES", "76SERIES", "78SERIES", "79SERIES",
        "VDJ7*", "GDJ7*", "GRJ7*", "HZJ7*", "FZJ7*", "FJ7*",
        "TROOPCARRIER", "TROOPY", "TROOP CARRIER",
        "/LC79/", "/LC78/", "/LC76/", "/LC70/", "/70-SERIES/", "/79-SERIES/",
        "LANDCRUISER-70", "LANDCRUISER-79", "LAND-CRUISER-70", "LAND-CRUISER-79",
    ),
    "LC100": (
        "LC100", "LC 100", "LC-100", "100 SERIES", "100-SERIES", "100SERIES",
        "HDJ100", "UZJ100", "FZJ105", "HZJ105",
        "/LC100/", "LANDCRUISER-100", "LAND-CRUISER-100",
    ),
    "LC200": (
        "LC200", "LC 200", "LC-200", "200 SERIES", "200-SERIES", "200SERIES",
        "URJ200", "VDJ200", "UZJ200",
        "/LC200/", "/200-SERIES/", "LANDCRUISER-200", "LAND-CRUISER-200",
    ),
    "LC300": (
        "LC300", "LC 300", "LC-300", "300 SERIES", "300-SERIES", "300SERIES",
        "FJA300", "VJA300",
        "GR SPORT", "GR-SPORT", "GRSPORT",
        "/LC300/", "/300-SERIES/", "LANDCRUISER-300", "LAND-CRUISER-300",
    ),
}

ENGINE_SIGNALS = {
    "V8_DIESEL": ("VDJ*", "1VD*", "V8 DIESEL", "V8 TURBO DIESEL", "4.5L DIESEL", "4.5 DIESEL", "4.5L V8"),
    "I4_DIESEL": ("GDJ*", "1GD*", "2.8L", "2.8 DIESEL", "4CYL DIESEL", "4 CYL DIESEL"),
    "V6_PETROL": ("GRJ*", "1GR*", "V6 PETROL", "4.0L PETROL", "4.0 PETROL"),
    "V6_DIESEL_TT": ("FJA*", "F33A*", "TWIN TURBO", "3.3L DIESEL", "3.3 DIESEL", "3.3L V6"),
}

CAB_SIGNALS = {
    "SINGLE": ("SINGLE CAB", "SINGLE-CAB", "S/CAB"),
    "DUAL": ("DUAL CAB", "DUAL-CAB", "DUALCAB", "DOUBLE CAB", "D/CAB", "CREW CAB"),
    "EXTRA": ("EXTRA CAB", "KING CAB", "SPACE CAB", "SUPER CAB", "FREESTYLE CAB"),
}

BODY_SIGNALS = {
    "CAB_CHASSIS": ("CAB CHASSIS", "CAB-CHASSIS", "TRAY", "TRAYBACK", "UTE"),
    "WAGON": ("WAGON", "SUV", "STATION WAGON"),
}

ATTRIBUTES = (
    ("series", "series_family", SERIES_SIGNALS),
    ("engine", "engine_family", ENGINE_SIGNALS),
    ("cab", "cab_type", CAB_SIGNALS),
    ("body", "body_type", BODY_SIGNALS),
)


def _signal_pattern(signal: str) -> re.Pattern:
    prefix = signal.endswith("*")
    body = re.escape(signal.rstrip("*").upper())
    right = "" if prefix else r"(?![A-Z0-9])"
    return re.compile(r"(?<![A-Z0-9])" + body + right)


_COMPILED = {
    attr: {family: [(s, _signal_pattern(s)) for s in signals] for family, signals in vocab.items()}
    for attr, _, vocab in ATTRIBUTES
}


def normalize_value(value: Optional[str]) -> Optional[str]:
    """Hunt values are stored loosely ("dual", "Cab Chassis"); compare as DUAL, CAB_CHASSIS."""
    if not value:
        return None
    return re.sub(r"[^A-Z0-9]+", "_", value.strip().upper()).strip("_") or None


# =============================================================================
# DETECTION
# =============================================================================

@dataclass
class Detection:
    """Detected value for one attribute."""
    attribute: str
    value: Optional[str] = None
    confidence: Confidence = Confidence.LOW
    hits: dict[str, int] = field(default_factory=dict)
    tied: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "confidence": self.confidence.value,
            "hits": self.hits,
            "tied": self.tied,
        }


def count_signals(text: str, signals: list[tuple[str, re.Pattern]]) -> int:
    """
    Count independent signal hits in ``text``.

    A match lying inside a longer match (``LC79`` inside ``/LC79/`` at the
    same position) is not counted again. Each signal counts at most once.
    """
    matches = []
    for signal, pattern in signals:
        for m in pattern.finditer(text):
            matches.append((m.start(), m.end(), signal))

    # Longest first so enclosing matches claim their span
    matches.sort(key=lambda m: (m[0] - m[1], m[0]))
    kept: list[tuple[int, int]] = []
    seen: set[str] = set()
    for start, end, signal in matches:
        if any(s <= start and end <= e for s, e in kept):
            continue
        kept.append((start, end))
        seen.add(signal)
    return len(seen)


def detect(attribute: str, text: str) -> Detection:
    """
    Detect one attribute from text.

    Confidence is high at 2+ independent hits, medium at 1, low at 0.
    When two or more families share the top hit count the result is
    ambiguous: no value, low confidence, tied families listed.
    """
    upper = (text or "").upper()
    hits = {}
    for family, signals in _COMPILED[attribute].items():
        count = count_signals(upper, signals)
        if count:
            hits[family] = count

    if not hits:
        return Detection(attribute)

    top = max(hits.values())
    leaders = sorted(f for f, c in hits.items() if c == top)
    if len(leaders) > 1:
        return Detection(attribute, None, Confidence.LOW, hits, leaders)

    confidence = Confidence.HIGH if top >= 2 else Confidence.MEDIUM
    return Detection(attribute, leaders[0], confidence, hits)


def detect_all(text: str) -> dict[str, Detection]:
    return {attr: detect(attr, text) for attr, _, _ in ATTRIBUTES}


# =============================================================================
# GATES
# =============================================================================

@dataclass
class GateResult:
    """
    Outcome of the compatibility gates.

    ``allow_watch`` is False when any hard reason is present.
    """
    hard_reasons: list[str] = field(default_factory=list)
    soft_reasons: list[str] = field(default_factory=list)
    detections: dict[str, Detection] = field(default_factory=dict)

    @property
    def allow_watch(self) -> bool:
        return not self.hard_reasons

    @property
    def reasons(self) -> list[str]:
        return self.hard_reasons + self.soft_reasons

    def classification(self) -> dict:
        return {attr: d.to_dict() for attr, d in self.detections.items()}


def evaluate(text: str, hunt: Hunt) -> GateResult:
    """
    Apply the hard and soft gates to candidate text.

    Args:
        text: All free text known for the candidate (title, snippet, URL)
        hunt: The hunt's requirements

    Returns:
        GateResult with reason codes such as SERIES_MISMATCH:LC300 (hard),
        SERIES_UNKNOWN or MISSING_REQUIRED_TOKEN:GXL (soft)
    """
    result = GateResult(detections=detect_all(text))

    for attr, hunt_field, _ in ATTRIBUTES:
        required = normalize_value(getattr(hunt, hunt_field))
        if required is None:
            continue
        detection = result.detections[attr]
        code = attr.upper()
        if detection.value is None:
            result.soft_reasons.append(f"{code}_UNKNOWN")
        elif detection.value != required:
            result.hard_reasons.append(f"{code}_MISMATCH:{detection.value}")

    if hunt.must_have_mode == "strict":
        upper = (text or "").upper()
        for token in hunt.must_have_tokens:
            if not _signal_pattern(token).search(upper):
                result.soft_reasons.append(f"MISSING_REQUIRED_TOKEN:{token}")

    if result.hard_reasons:
        logger.debug(f"Hard reject: {', '.join(result.hard_reasons)}")
    return result


def gate_candidate(candidate: Candidate, hunt: Hunt) -> GateResult:
    """Evaluate a candidate and record detected values on it."""
    result = evaluate(candidate.text_blob(), hunt)
    candidate.classification.update(result.classification())
    return result
