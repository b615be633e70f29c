"""
Best-effort parsing of PHP associative-array literals.

Translation calls and Blade directives carry inline data such as
``['name' => 'Ann', 'count' => 3]``. parse_array_literal() turns the common
shapes into a dict and gives up (returning {}) on anything it cannot consume
completely. It never raises, so callers can swap in a real parser later
without changing their error handling.
"""

import re
from typing import Any, Dict

_STRING = r"""'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*\""""
_NUMBER = r"-?\d+(?:\.\d+)?"
_VARIABLE = r"\$[A-Za-z_]\w*(?:->[A-Za-z_]\w*|\[[^\[\]]*\])*"

_PAIR_RE = re.compile(
    rf"""\s*(?P<key>{_STRING}|-?\d+)\s*=>\s*
        (?P<value>{_STRING}|{_NUMBER}|true\b|false\b|null\b|{_VARIABLE}|\[[^\[\]]*\])
        \s*(?P<sep>,|\Z)""",
    re.VERBOSE | re.IGNORECASE | re.DOTALL,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"', "$": "$"}


def _unquote(literal: str) -> str:
    quote, body = literal[0], literal[1:-1]
    if quote == "'":
        # Single-quoted PHP strings only unescape \' and \\
        return re.sub(r"\\([\\'])", r"\1", body)
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), "\\" + m.group(1)), body)


def _convert_value(literal: str) -> Any:
    lowered = literal.lower()
    if literal[0] in "'\"":
        return _unquote(literal)
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    if literal.startswith("["):
        nested = parse_array_literal(literal)
        return nested if nested or literal[1:-1].strip() == "" else literal
    if literal.startswith("$"):
        # Runtime value, keep the expression text
        return literal
    return float(literal) if "." in literal else int(literal)


def _convert_key(literal: str):
    if literal[0] in "'\"":
        return _unquote(literal)
    return int(literal)


def parse_array_literal(blob) -> Dict[Any, Any]:
    """
    Parse a PHP array literal into a dict.

    Supported: quoted or integer keys; string, number, true/false/null,
    $variable and flat nested-array values; short [] or array() syntax;
    trailing comma.

    Args:
        blob: The literal text, e.g. "['name' => 'Ann']"

    Returns:
        Parsed dict, or {} when the blob is missing or malformed
    """
    if not isinstance(blob, str):
        return {}

    text = blob.strip()
    if text.startswith("[") and text.endswith("]"):
        body = text[1:-1]
    elif text.lower().startswith("array(") and text.endswith(")"):
        body = text[6:-1]
    else:
        return {}

    result: Dict[Any, Any] = {}
    pos = 0
    while body[pos:].strip():
        match = _PAIR_RE.match(body, pos)
        if not match:
            return {}
        result[_convert_key(match.group("key"))] = _convert_value(match.group("value"))
        pos = match.end()
        if not match.group("sep"):
            break

    if body[pos:].strip():
        return {}
    return result
