"""Sandboxed field accessor exposed to script rules as `get` / `set`, plus script value types."""

from typing import Any

from src.rules.types import external_field_name, normalize_field_name


class ScriptText(str):
    """String value with the .NET-style string members scripts expect."""

    @property
    def Length(self) -> int:
        return len(self)

    def Trim(self) -> "ScriptText":
        return ScriptText(self.strip())

    def TrimStart(self) -> "ScriptText":
        return ScriptText(self.lstrip())

    def TrimEnd(self) -> "ScriptText":
        return ScriptText(self.rstrip())

    def ToUpper(self) -> "ScriptText":
        return ScriptText(self.upper())

    def ToLower(self) -> "ScriptText":
        return ScriptText(self.lower())

    def Contains(self, value: str) -> bool:
        return str(value) in self

    def StartsWith(self, value: str) -> bool:
        return self.startswith(str(value))

    def EndsWith(self, value: str) -> bool:
        return self.endswith(str(value))

    def Replace(self, old: str, new: str) -> "ScriptText":
        return ScriptText(self.replace(str(old), str(new)))

    def Split(self, separator: str) -> list["ScriptText"]:
        return [ScriptText(part) for part in self.split(str(separator))]

    def Substring(self, start: int, length: int | None = None) -> "ScriptText":
        if length is None:
            return ScriptText(self[start:])
        return ScriptText(self[start : start + length])

    def IndexOf(self, value: str) -> int:
        return self.find(str(value))

    def ToString(self) -> "ScriptText":
        return self

    def __add__(self, other: Any) -> "ScriptText":
        return ScriptText(str.__add__(self, str(as_script_text(other))))

    def __radd__(self, other: Any) -> "ScriptText":
        return ScriptText(str(as_script_text(other)) + str(self))


class _ScriptNumber:
    """Text conversions shared by numeric script locals."""

    def ToString(self) -> ScriptText:
        return as_script_text(self)

    def __add__(self, other: Any) -> Any:
        if isinstance(other, str):
            return ScriptText(str(as_script_text(self)) + other)
        return super().__add__(other)

    def __radd__(self, other: Any) -> Any:
        if isinstance(other, str):
            return ScriptText(other + str(as_script_text(self)))
        return super().__radd__(other)


class ScriptInt(_ScriptNumber, int):
    pass


class ScriptDouble(_ScriptNumber, float):
    pass


def as_script_number(value: Any) -> Any:
    """Wrap plain numbers so scripts can call ToString() and concatenate them."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if isinstance(value, int):
        return ScriptInt(value)
    return ScriptDouble(value)


def as_script_text(value: Any) -> ScriptText:
    if value is None:
        return ScriptText("")
    if isinstance(value, bool):
        return ScriptText("True" if value else "False")
    if isinstance(value, float) and value.is_integer():
        return ScriptText(str(int(value)))
    return ScriptText(str(value))


class FieldAccessor:
    """
    Read/write view over a work item's flattened fields.

    Reads never raise; unknown fields read as "". Writes are buffered under
    the tracker's dotted field name and are visible to later reads, but the
    underlying field map is left untouched until the batch is pushed.
    """

    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._overlay: dict[str, str] = {}
        self._changes: dict[str, str] = {}

    def get(self, name: str) -> ScriptText:
        key = normalize_field_name(str(name))
        if key in self._overlay:
            return ScriptText(self._overlay[key])
        return as_script_text(self._fields.get(key))

    def set(self, name: str, value: Any) -> None:
        text = str(as_script_text(value))
        self._changes[external_field_name(str(name))] = text
        self._overlay[normalize_field_name(str(name))] = text

    @property
    def has_changes(self) -> bool:
        return bool(self._changes)

    def changes(self) -> dict[str, str]:
        return dict(self._changes)
