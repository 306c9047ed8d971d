"""
Row filters for the record store.

A filter expression from the command line ("email=a@b.com", "tenant_id!=null",
"role=in(admin,user)") becomes one PostgREST query parameter.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable

OPERATORS = {
    "!=": "neq",
    ">=": "gte",
    "<=": "lte",
    "~": "ilike",
    "=": "eq",
    ">": "gt",
    "<": "lt",
}

# Column is everything up to the first operator character; two-character
# operators are tried before their one-character prefixes.
EXPR_PATTERN = re.compile(r"^([^!<>=~]*)(!=|>=|<=|~|=|>|<)(.*)$", re.DOTALL)
IN_PATTERN = re.compile(r"^in\((.*)\)$", re.IGNORECASE)
RESERVED_CHARS = set(',()" ')


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    @classmethod
    def parse(cls, expr: str) -> "Filter":
        match = EXPR_PATTERN.match(expr)
        if not match:
            raise ValueError(f"Filter has no operator: '{expr}' (expected col=value, col!=value, ...)")

        column = match.group(1).strip()
        op = OPERATORS[match.group(2)]
        value = match.group(3).strip()
        if not column:
            raise ValueError(f"Filter has no column: '{expr}'")

        if value.lower() == "null":
            if op == "eq":
                return cls(column, "is", None)
            if op == "neq":
                return cls(column, "not.is", None)

        in_match = IN_PATTERN.match(value)
        if op == "eq" and in_match:
            items = [v.strip() for v in in_match.group(1).split(",") if v.strip()]
            return cls(column, "in", tuple(items))

        return cls(column, op, value)

    def to_param(self) -> tuple:
        """Render as a (column, value) query parameter."""
        if self.op == "or":
            return "or", "(" + ",".join(f._inline() for f in self.value) + ")"
        if self.op in ("is", "not.is"):
            return self.column, f"{self.op}.null"
        if self.op == "in":
            return self.column, "in.(" + ",".join(_quote(v) for v in self.value) + ")"
        if self.op == "ilike":
            return self.column, f"ilike.{self.value}"
        return self.column, f"{self.op}.{_format(self.value)}"

    def _inline(self) -> str:
        """Render inside an or=(...) group: column.op.value, quoted where needed."""
        if self.op in ("eq", "neq", "gt", "gte", "lt", "lte", "ilike"):
            return f"{self.column}.{self.op}.{_quote(self.value)}"
        column, value = self.to_param()
        return f"{column}.{value}"

    def __str__(self):
        column, value = self.to_param()
        return f"{column}={value}"


def eq(column: str, value: Any) -> Filter:
    if value is None:
        return Filter(column, "is", None)
    return Filter(column, "eq", value)


def is_in(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def not_null(column: str) -> Filter:
    return Filter(column, "not.is", None)


def any_of(*filters: Filter) -> Filter:
    """Match rows satisfying at least one of the filters (PostgREST or=)."""
    return Filter("or", "or", tuple(filters))


def parse_filters(exprs: Iterable[str]) -> list:
    return [Filter.parse(expr) for expr in exprs]


def _format(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(value: Any) -> str:
    text = _format(value)
    if any(ch in RESERVED_CHARS for ch in text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def coerce_value(text: str) -> Any:
    """Interpret a --set value as a JSON scalar, object or array where possible."""
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    # Leading zeros or "+" mean an identifier or phone number, kept as text.
    if re.fullmatch(r"-?(0|[1-9]\d*)", text.strip()):
        return int(text)
    if re.fullmatch(r"-?(0|[1-9]\d*)\.\d+", text.strip()):
        return float(text)
    if text.strip().startswith(("{", "[")):
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text
