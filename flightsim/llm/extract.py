# flightsim/llm/extract.py
"""
Pull a JSON object out of free-form model output.

Fallback order:
1. direct   - the whole text parses
2. fenced   - the first ```json fenced block that parses
3. braces   - brace-balanced ``{...}`` spans, largest first
4. scraped  - only when the caller passes ``defaults``: ``"key": value``
              pairs for the default keys, the rest filled from defaults
              (method is "defaults" when nothing could be scraped)

Callers can check ``ExtractionResult.method`` to tell a clean parse from
a guess.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from ..errors import GenerationParseError

CLEAN_METHODS = ("direct", "fenced", "braces")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_SCALAR_RE = r'"{key}"\s*:\s*("(?:[^"\\]|\\.)*"|-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null)'


@dataclass
class ExtractionResult:
    """Parsed object plus the fallback step that produced it."""
    data: Dict[str, Any]
    method: str

    @property
    def is_clean(self) -> bool:
        return self.method in CLEAN_METHODS


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def _balanced_spans(text: str) -> Iterator[str]:
    """Yield every top-level ``{...}`` span, respecting JSON strings."""
    depth = 0
    start = None
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start is not None:
                yield text[start:i + 1]
                start = None


def _scrape(text: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
    found: Dict[str, Any] = {}
    for key in defaults:
        match = re.search(_SCALAR_RE.format(key=re.escape(key)), text)
        if match:
            try:
                found[key] = json.loads(match.group(1))
            except json.JSONDecodeError:
                continue
    return found


def extract_json(text: str, defaults: Optional[Dict[str, Any]] = None) -> ExtractionResult:
    """
    Extract a JSON object from model output.

    Args:
        text: Raw model output
        defaults: Opt-in last resort. When given, unparseable text yields
            the scraped keys merged over these defaults instead of an error.

    Raises:
        GenerationParseError: no object could be extracted and no defaults given
    """
    text = (text or "").strip()

    data = _loads_object(text)
    if data is not None:
        return ExtractionResult(data, "direct")

    for block in _FENCE_RE.findall(text):
        data = _loads_object(block.strip())
        if data is not None:
            return ExtractionResult(data, "fenced")

    spans: List[str] = sorted(_balanced_spans(text), key=len, reverse=True)
    for span in spans:
        data = _loads_object(span)
        if data is not None:
            return ExtractionResult(data, "braces")

    if defaults is not None:
        scraped = _scrape(text, defaults)
        return ExtractionResult({**defaults, **scraped}, "scraped" if scraped else "defaults")

    raise GenerationParseError("No valid JSON found in model response", raw_text=text)


def generate_json(
    generator,
    messages: List[Dict[str, str]],
    defaults: Optional[Dict[str, Any]] = None,
    **generate_kwargs,
) -> ExtractionResult:
    """Call ``generator.generate(messages)`` and extract a JSON object from the reply."""
    return extract_json(generator.generate(messages, **generate_kwargs), defaults=defaults)
