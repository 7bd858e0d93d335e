"""Built-in rule handlers for flow nodes.

Two registries live here, both pure and JSON-friendly:

- answer validation rules (`required`, `email`, `phone`, `minLength`,
  `maxLength`, `pattern`) used when a question receives an answer;
- condition operators (`equals`, `contains`, `in_list`, ...) used by
  condition nodes and guarded edges.

Values coming out of a FlowState are loosely typed. Operators work on an
explicit optional text view of the value (`None` when the variable is
absent) so that `0` and `False` are never mistaken for "empty".
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .models import Rule, ValidationRule


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def as_text(value: Any) -> Optional[str]:
    """Return the string form of a variable value, or None when absent."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def as_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


_MISSING = object()


def get_by_path(source: Any, dotted_key: str, default: Any = None) -> Any:
    """Read a dotted path from nested dicts/lists (`items.0.name`)."""
    if isinstance(source, Mapping) and dotted_key in source:
        return source[dotted_key]
    parts = [p for p in str(dotted_key or "").split(".") if p]
    if not parts:
        return default
    cur: Any = source
    for part in parts:
        if isinstance(cur, Mapping):
            cur = cur.get(part, _MISSING)
        elif isinstance(cur, list) and part.isdigit() and int(part) < len(cur):
            cur = cur[int(part)]
        else:
            return default
        if cur is _MISSING:
            return default
    return cur


def _normalized(value: Any) -> str:
    text = as_text(value)
    return (text or "").strip().lower()


def _list_entries(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        raw = [as_text(v) or "" for v in value]
    else:
        raw = (as_text(value) or "").split(",")
    return [v.strip().lower() for v in raw]


# ---------------------------------------------------------------------------
# Condition operators
# ---------------------------------------------------------------------------


def op_equals(field_value: Any, rule_value: Any) -> bool:
    """Case-insensitive, trimmed string equality."""
    return _normalized(field_value) == _normalized(rule_value)


def op_not_equals(field_value: Any, rule_value: Any) -> bool:
    return not op_equals(field_value, rule_value)


def op_contains(field_value: Any, rule_value: Any) -> bool:
    """Case-sensitive substring test."""
    text = as_text(field_value)
    if text is None:
        return False
    return (as_text(rule_value) or "") in text


def op_starts_with(field_value: Any, rule_value: Any) -> bool:
    text = as_text(field_value)
    if text is None:
        return False
    return text.lower().startswith((as_text(rule_value) or "").lower())


def op_ends_with(field_value: Any, rule_value: Any) -> bool:
    text = as_text(field_value)
    if text is None:
        return False
    return text.lower().endswith((as_text(rule_value) or "").lower())


def op_greater_than(field_value: Any, rule_value: Any) -> bool:
    a = as_number(field_value)
    b = as_number(rule_value)
    if a is None or b is None:
        return False
    return a > b


def op_less_than(field_value: Any, rule_value: Any) -> bool:
    a = as_number(field_value)
    b = as_number(rule_value)
    if a is None or b is None:
        return False
    return a < b


def op_is_empty(field_value: Any, rule_value: Any = None) -> bool:
    del rule_value
    text = as_text(field_value)
    if text is None:
        return True
    if isinstance(field_value, (list, dict)):
        return len(field_value) == 0
    return text.strip() == ""


def op_is_not_empty(field_value: Any, rule_value: Any = None) -> bool:
    return not op_is_empty(field_value, rule_value)


def op_in_list(field_value: Any, rule_value: Any) -> bool:
    if as_text(field_value) is None:
        return False
    return _normalized(field_value) in _list_entries(rule_value)


def op_not_in_list(field_value: Any, rule_value: Any) -> bool:
    return not op_in_list(field_value, rule_value)


RULE_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": op_equals,
    "not_equals": op_not_equals,
    "contains": op_contains,
    "starts_with": op_starts_with,
    "ends_with": op_ends_with,
    "greater_than": op_greater_than,
    "less_than": op_less_than,
    "is_empty": op_is_empty,
    "is_not_empty": op_is_not_empty,
    "in_list": op_in_list,
    "not_in_list": op_not_in_list,
}


def evaluate_rule(rule: Rule, variables: Dict[str, Any]) -> bool:
    """Compare the (dotted) `rule.field` variable to `rule.value`. Undeclared fields are absent."""
    handler = RULE_OPERATORS.get(rule.operator)
    if handler is None:
        return False
    return bool(handler(get_by_path(variables, rule.field), rule.value))


# ---------------------------------------------------------------------------
# Answer validation rules
# ---------------------------------------------------------------------------

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{6,15}$")
PHONE_SEPARATORS_RE = re.compile(r"[\s\-().]")

DEFAULT_MESSAGES: Dict[str, str] = {
    "required": "This field is required.",
    "email": "Please enter a valid email address.",
    "phone": "Please enter a valid phone number.",
    "minLength": "Your answer is too short (minimum {value} characters).",
    "maxLength": "Your answer is too long (maximum {value} characters).",
    "pattern": "Your answer is not in the expected format.",
}


@dataclass(frozen=True)
class AnswerValidation:
    valid: bool
    message: Optional[str] = None


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def check_required(answer: str, value: Any) -> bool:
    del value
    return answer.strip() != ""


def check_email(answer: str, value: Any) -> bool:
    del value
    text = answer.strip()
    return not text or bool(EMAIL_RE.match(text))


def check_phone(answer: str, value: Any) -> bool:
    del value
    text = PHONE_SEPARATORS_RE.sub("", answer.strip())
    return not text or bool(PHONE_RE.match(text))


def check_min_length(answer: str, value: Any) -> bool:
    return len(answer.strip()) >= _as_int(value, 0)


def check_max_length(answer: str, value: Any) -> bool:
    limit = _as_int(value, -1)
    return limit < 0 or len(answer.strip()) <= limit


def check_pattern(answer: str, value: Any) -> bool:
    if not answer.strip():
        return True
    try:
        return re.search(str(value or ""), answer) is not None
    except re.error:
        return False


VALIDATORS: Dict[str, Callable[[str, Any], bool]] = {
    "required": check_required,
    "email": check_email,
    "phone": check_phone,
    "minLength": check_min_length,
    "maxLength": check_max_length,
    "pattern": check_pattern,
}


def validate_answer(rules: Sequence[ValidationRule], raw_answer: Any) -> AnswerValidation:
    """Check an answer against rules in declaration order; the first failure wins."""
    answer = as_text(raw_answer) or ""
    for rule in rules:
        check = VALIDATORS.get(rule.type)
        if check is None or check(answer, rule.value):
            continue
        if rule.message:
            return AnswerValidation(valid=False, message=rule.message)
        template = DEFAULT_MESSAGES.get(rule.type, "Invalid answer.")
        return AnswerValidation(valid=False, message=template.format(value=rule.value))
    return AnswerValidation(valid=True)

