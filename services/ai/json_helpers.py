import json
import re
import unicodedata
from typing import Any, Dict


def clean_control_chars(s: str) -> str:
    return "".join(ch for ch in s if ch in "\n\t" or unicodedata.category(ch)[0] != "C")


def strip_code_fences(s: str) -> str:
    s = s.strip()
    if s.startswith("```"):
        s = s.split("\n", 1)[1] if "\n" in s else ""
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


def _core_parse(text: str) -> Any:
    """Parse JSON from model text, tolerating code fences, control chars and trailing commas."""
    text = strip_code_fences(clean_control_chars(text or ""))

    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        # grounded responses sometimes wrap the object in prose
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start:end + 1]
        # remove trailing commas before '}' or ']'
        text = re.sub(r",(\s*[}\]])", r"\1", text)
        obj = json.loads(text)

    # sometimes models double-encode JSON as a string
    if isinstance(obj, str):
        obj = json.loads(obj)

    return obj


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the JSON object in model output. Raises ValueError otherwise."""
    obj = _core_parse(text)
    if not isinstance(obj, dict):
        raise ValueError("Expected a JSON object")
    return obj
