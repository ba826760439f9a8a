"""
Source notation parser and generator.

Reasoning text embeds value references in the form:

    ${<valueKey>, tooltip:<sourceType>-<refType>:<refValue>}

Examples:
    ${totalRevenue, tooltip:userInput-index:0}
    ${noi, tooltip:calculated-key:netOperatingIncome}
    ${baseRent, tooltip:sourceDocument-id:page1-line15}

The UI renders each reference as a value with a provenance tooltip. The
scanner below is a small state machine over the text; it holds no state
between calls.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

import structlog

from parsenfill.custom_model.models import SourceReference, SourceType

logger = structlog.get_logger(__name__)

TOKEN_OPEN = "${"
TOKEN_CLOSE = "}"
TOOLTIP_PREFIX = "tooltip:"

VALID_SOURCE_TYPES = ("userInput", "calculated", "sourceDocument", "assumption")
VALID_REF_TYPES = ("index", "key", "id")

# Notation vocabulary for each provenance type
NOTATION_SOURCE_TYPES = {
    SourceType.USER_INPUT: "userInput",
    SourceType.PARSED_DOCUMENT: "sourceDocument",
    SourceType.CALCULATED: "calculated",
    SourceType.DEFAULT: "assumption",
    SourceType.ASSUMPTION: "assumption",
}


class SegmentType(str, Enum):
    TEXT = "text"
    REFERENCE = "reference"


@dataclass(frozen=True)
class NotationRef:
    """Payload of a single reference token."""
    value_key: str
    source_type: str
    ref_type: str
    ref_value: str

    def __post_init__(self):
        if not isinstance(self.ref_value, str):
            object.__setattr__(self, "ref_value", str(self.ref_value))


@dataclass
class ParsedSegment:
    """
    One piece of parsed text.

    For reference segments `content` is the value key. `raw` is always the
    exact source text of the segment.
    """
    type: SegmentType
    content: str
    raw: str
    reference: Optional[NotationRef] = None


@dataclass
class NotationValidation:
    """Result of validating notation in a text."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


# =============================================================================
# Scanner
# =============================================================================

def _is_word_char(char: str) -> bool:
    return char == "_" or ("0" <= char <= "9") or ("a" <= char <= "z") or ("A" <= char <= "Z")


def _scan_word(text: str, pos: int) -> Tuple[str, int]:
    end = pos
    while end < len(text) and _is_word_char(text[end]):
        end += 1
    return text[pos:end], end


def _scan_token(text: str, start: int) -> Optional[Tuple[NotationRef, int]]:
    """
    Try to read a reference token starting at `start` (which holds "${").

    Returns the reference and the index just past the closing brace, or None
    when the text at `start` is not a well-formed token.
    """
    pos = start + len(TOKEN_OPEN)

    value_key, pos = _scan_word(text, pos)
    if not value_key or not text.startswith(",", pos):
        return None
    pos += 1
    while pos < len(text) and text[pos].isspace():
        pos += 1

    if not text.startswith(TOOLTIP_PREFIX, pos):
        return None
    pos += len(TOOLTIP_PREFIX)

    source_type, pos = _scan_word(text, pos)
    if not source_type or not text.startswith("-", pos):
        return None
    pos += 1

    ref_type, pos = _scan_word(text, pos)
    if not ref_type or not text.startswith(":", pos):
        return None
    pos += 1

    close = text.find(TOKEN_CLOSE, pos)
    if close <= pos:
        # Missing brace or empty ref value
        return None

    ref = NotationRef(
        value_key=value_key,
        source_type=source_type,
        ref_type=ref_type,
        ref_value=text[pos:close],
    )
    return ref, close + 1


def parse(text: str) -> List[ParsedSegment]:
    """
    Parse text into an ordered list of text and reference segments.

    Segments cover the whole input with no gaps or overlaps; empty text gaps
    are omitted. A "${" that does not open a well-formed token is literal.
    """
    segments: List[ParsedSegment] = []
    text_start = 0
    pos = 0

    while True:
        pos = text.find(TOKEN_OPEN, pos)
        if pos == -1:
            break

        scanned = _scan_token(text, pos)
        if scanned is None:
            pos += 1
            continue

        ref, end = scanned
        if pos > text_start:
            literal = text[text_start:pos]
            segments.append(ParsedSegment(type=SegmentType.TEXT, content=literal, raw=literal))
        segments.append(ParsedSegment(
            type=SegmentType.REFERENCE,
            content=ref.value_key,
            raw=text[pos:end],
            reference=ref,
        ))
        text_start = pos = end

    if text_start < len(text):
        literal = text[text_start:]
        segments.append(ParsedSegment(type=SegmentType.TEXT, content=literal, raw=literal))

    return segments


def reconstruct(segments: List[ParsedSegment]) -> str:
    """Rebuild the exact text a segment list was parsed from."""
    return "".join(segment.raw for segment in segments)


def generate(ref: NotationRef) -> str:
    """Generate the canonical notation token for a reference."""
    return (
        f"{TOKEN_OPEN}{ref.value_key}, {TOOLTIP_PREFIX}"
        f"{ref.source_type}-{ref.ref_type}:{ref.ref_value}{TOKEN_CLOSE}"
    )


def extract_references(text: str) -> List[NotationRef]:
    """Return the reference payloads found in text, in order."""
    return [
        segment.reference
        for segment in parse(text)
        if segment.type == SegmentType.REFERENCE
    ]


def replace(text: str, resolver: Callable[[NotationRef], str]) -> str:
    """
    Substitute every reference token with `resolver(ref)`.

    Text segments are left untouched.
    """
    parts = []
    for segment in parse(text):
        if segment.type == SegmentType.REFERENCE:
            parts.append(resolver(segment.reference))
        else:
            parts.append(segment.content)
    return "".join(parts)


def validate(text: str) -> NotationValidation:
    """
    Check notation syntax and vocabulary without modifying the text.

    Reports unclosed tokens, unknown source types and unknown reference types.
    """
    errors: List[str] = []

    pos = text.find(TOKEN_OPEN)
    while pos != -1:
        next_open = text.find(TOKEN_OPEN, pos + len(TOKEN_OPEN))
        close = text.find(TOKEN_CLOSE, pos + len(TOKEN_OPEN))
        limit = next_open if next_open != -1 else len(text)
        if close == -1 or close > limit:
            errors.append(
                f"Unclosed source notation at position {pos} (missing closing brace)"
            )
        pos = next_open

    for ref in extract_references(text):
        if ref.source_type not in VALID_SOURCE_TYPES:
            errors.append(
                f"Invalid source type: {ref.source_type}. "
                f"Valid types: {', '.join(VALID_SOURCE_TYPES)}"
            )
        if ref.ref_type not in VALID_REF_TYPES:
            errors.append(
                f"Invalid reference type: {ref.ref_type}. "
                f"Valid types: {', '.join(VALID_REF_TYPES)}"
            )

    if errors:
        logger.debug("Source notation validation failed", errors=len(errors))

    return NotationValidation(is_valid=not errors, errors=errors)


# =============================================================================
# Provenance helpers
# =============================================================================

def notation_source_type(source_type: SourceType) -> str:
    """Map a provenance type to its notation vocabulary."""
    return NOTATION_SOURCE_TYPES[SourceType(source_type)]


def ref_for_source(value_key: str, source: SourceReference) -> NotationRef:
    """Build a notation reference pointing at a value's provenance."""
    reference = source.reference
    if reference.id:
        ref_type, ref_value = "id", reference.id
    elif reference.key:
        ref_type, ref_value = "key", reference.key
    else:
        ref_type, ref_value = "index", str(reference.index)
    return NotationRef(
        value_key=value_key,
        source_type=notation_source_type(source.source_type),
        ref_type=ref_type,
        ref_value=ref_value,
    )


def build_reasoning_summary(
    template: str,
    values: Mapping[str, Union[NotationRef, Dict[str, object]]],
) -> str:
    """
    Fill `{name}` placeholders with generated notation.

    Each value is either a NotationRef or a dict with `value`, `source_type`,
    `ref_type` and `ref_value`; the displayed value becomes the token's
    value key.

    Example:
        build_reasoning_summary(
            "Extracted {count} revenue items totaling {total}.",
            {"count": {"value": 5, "source_type": "calculated",
                       "ref_type": "key", "ref_value": "revenueItems"}, ...},
        )
    """
    result = template
    for name, entry in values.items():
        if isinstance(entry, NotationRef):
            ref = entry
        else:
            ref = NotationRef(
                value_key=str(entry["value"]),
                source_type=str(entry["source_type"]),
                ref_type=str(entry["ref_type"]),
                ref_value=str(entry["ref_value"]),
            )
        result = result.replace(f"{{{name}}}", generate(ref), 1)
    return result
