import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from drafting.errors import ParseError
from tools.logger import setup_logger

logger = setup_logger("response-repair-parser")

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")
_FENCED_BLOCK = re.compile(r"```[a-zA-Z]*\s*([\s\S]*?)\s*```")
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")

# Bound on how many earlier commas the truncation pass walks back over
MAX_TRUNCATION_ATTEMPTS = 25


@dataclass
class ParseResult:
    """
    Outcome of parsing one generated response.

    Exactly one of ``value`` / ``error`` is set.
    """

    value: Optional[Dict[str, Any]] = None
    error: Optional[ParseError] = None
    repaired: bool = False

    @property
    def ok(self) -> bool:
        return self.value is not None


class ResponseRepairParser:
    """
    Extracts one JSON object from free-form generated text, repairing the
    usual damage (code fences, surrounding prose, trailing commas, missing
    closers, truncated final element).

    ``parse`` never raises; every path returns a ``ParseResult``.

    Example:
        >>> ResponseRepairParser().parse('```json\\n{"selectedIds": [1, 2],\\n```').value
        {'selectedIds': [1, 2]}
    """

    def parse(self, raw: Any) -> ParseResult:
        try:
            return self._parse(raw)
        except Exception as exc:  # parse never raises
            logger.warning(f"Unexpected parser failure: {exc}")
            return self._failure(f"unexpected parser failure: {exc}", raw)

    # -------------------------------------------------
    # Pipeline
    # -------------------------------------------------

    def _parse(self, raw: Any) -> ParseResult:
        if not isinstance(raw, str) or not raw.strip():
            return self._failure("empty response", raw if isinstance(raw, str) else None)

        text = self._strip_fences(raw.strip())
        text = self._extract_object_span(text)
        if text is None:
            return self._failure("no JSON object found in response", raw)

        value = self._loads_object(text)
        if value is not None:
            return ParseResult(value=value)

        value = self._repair(text)
        if value is not None:
            logger.info("Generated response parsed after repair")
            return ParseResult(value=value, repaired=True)

        return self._failure("response could not be repaired into a JSON object", raw)

    def _failure(self, message: str, raw: Optional[str]) -> ParseResult:
        logger.warning(f"ParseError: {message} | raw={str(raw)[:300]!r}")
        return ParseResult(error=ParseError(message, raw))

    # -------------------------------------------------
    # Step 1-2: fences and object span
    # -------------------------------------------------

    def _strip_fences(self, text: str) -> str:
        stripped = _FENCE_OPEN.sub("", text, count=1) if text.startswith("```") else text
        stripped = _FENCE_CLOSE.sub("", stripped)

        if "```" in stripped:
            # Fenced block embedded in prose
            match = _FENCED_BLOCK.search(text)
            if match:
                return match.group(1).strip()
        return stripped.strip()

    def _extract_object_span(self, text: str) -> Optional[str]:
        if text.startswith("{"):
            return text

        match = _OBJECT_SPAN.search(text)
        if match:
            return match.group(0)

        # Truncated object without any closing brace
        start = text.find("{")
        if start >= 0:
            return text[start:]
        return None

    # -------------------------------------------------
    # Step 3: strict parse
    # -------------------------------------------------

    def _loads_object(self, text: str) -> Optional[Dict[str, Any]]:
        try:
            value = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return None
        return value if isinstance(value, dict) else None

    # -------------------------------------------------
    # Step 4: repair
    # -------------------------------------------------

    def _repair(self, text: str) -> Optional[Dict[str, Any]]:
        scan = _scan_structure(text)
        commas = [idx for idx, ch in scan.chars if ch == ","]
        object_ends = [idx for idx, ch in scan.chars if ch == "}"]

        # Truncated final element: cut at the comma after the last complete object
        if object_ends:
            trailing = [idx for idx in commas if idx > object_ends[-1]]
            if trailing:
                value = self._loads_object(self._close(text[:trailing[0]]))
                if value is not None:
                    return value

        value = self._loads_object(self._close(text))
        if value is not None:
            return value

        for comma in reversed(commas[-MAX_TRUNCATION_ATTEMPTS:]):
            value = self._loads_object(self._close(text[:comma]))
            if value is not None:
                return value

        return None

    def _strip_trailing_commas(self, text: str) -> str:
        """
        Drop commas that precede a closer or the end of the text. Commas
        inside string literals are kept.
        """
        text = text.strip()
        drop = set()
        for idx, ch in _scan_structure(text).chars:
            if ch != ",":
                continue
            rest = text[idx + 1:].lstrip()
            if not rest or rest[0] in "}]":
                drop.add(idx)
        if not drop:
            return text
        return "".join(ch for idx, ch in enumerate(text) if idx not in drop)

    def _close(self, text: str) -> str:
        """
        Append the closers for every unmatched ``{`` / ``[``, innermost
        first, terminating an unfinished string literal beforehand.
        """
        text = self._strip_trailing_commas(text)
        scan = _scan_structure(text)

        stack: List[str] = []
        for _, ch in scan.chars:
            if ch in "{[":
                stack.append("}" if ch == "{" else "]")
            elif ch in "}]" and stack and stack[-1] == ch:
                stack.pop()

        repaired = text
        if scan.in_string:
            if scan.escaped:
                repaired = repaired[:-1]
            repaired += '"'
        return repaired + "".join(reversed(stack))


@dataclass
class _Structure:
    chars: List[Tuple[int, str]]
    in_string: bool
    escaped: bool


def _scan_structure(text: str) -> _Structure:
    """
    Positions of ``{ } [ ] ,`` outside string literals, plus whether the
    text stops inside a string.
    """
    chars: List[Tuple[int, str]] = []
    in_string = False
    escaped = False

    for idx, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in "{}[],":
            chars.append((idx, ch))

    return _Structure(chars=chars, in_string=in_string, escaped=escaped)




def parse_generated_json(raw: Any) -> ParseResult:
    """
    Module-level shortcut used by the pipeline stages.
    """
    return ResponseRepairParser().parse(raw)
