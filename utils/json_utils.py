# utils/json_utils.py
import re

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def extract_json_object(text: str) -> str:
    """
    Cut the JSON object out of a model answer.
    Handles fenced blocks (```json ... ```) and prose before/after the object.
    Returns the input unchanged when no braces are found.
    """
    if not text:
        return text

    text = text.strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        return text
    return text[start:end + 1]
