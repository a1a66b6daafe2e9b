"""Layered configuration tree with a form schema for editing it.

A :class:`ConfigNode` mirrors a settings dataclass.  Each leaf writes its
effective value straight back into the dataclass, choosing by priority:
dynamic modification > environment variable > user file > embedded default
YAML > global settings > dataclass default.
"""

from __future__ import annotations

import copy
import dataclasses
import json
import os
import re
import threading
import types
import typing
from datetime import timedelta
from decimal import Decimal
from typing import Any, Union

import yaml

from .settings import RegexpValue

_LOCK_TYPES = (type(threading.Lock()), type(threading.RLock()))
_PURE_NUMBER = re.compile(r"^\d+$")
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_FULL = re.compile(r"(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|µs|μs|ms|s|m|h))+")
_UNIT_NS = {
    "ns": 1,
    "us": 10**3,
    "µs": 10**3,
    "μs": 10**3,
    "ms": 10**6,
    "s": 10**9,
    "m": 60 * 10**9,
    "h": 3600 * 10**9,
}
_DEPRECATED = "废弃"

_NAMED_TYPES: dict[str, Any] = {
    "int": int,
    "str": str,
    "bool": bool,
    "float": float,
    "Any": Any,
    "typing.Any": Any,
    "timedelta": timedelta,
    "datetime.timedelta": timedelta,
    "RegexpValue": RegexpValue,
}


class _Box:
    def __init__(self, value: Any) -> None:
        self.value = value


class _Slot:
    """A settable attribute of an object."""

    __slots__ = ("owner", "attr")

    def __init__(self, owner: Any, attr: str) -> None:
        self.owner = owner
        self.attr = attr

    def get(self) -> Any:
        return getattr(self.owner, self.attr)

    def set(self, value: Any) -> None:
        setattr(self.owner, self.attr, value)


def _split_top(text: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for char in text:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts


def _resolve_text(text: str) -> Any:
    text = text.strip().strip("'\"")
    if text.startswith("Optional[") and text.endswith("]"):
        return typing.Optional[_resolve_text(text[len("Optional["):-1])]
    union = [part.strip() for part in text.split("|")] if "[" not in text else None
    if union and len(union) > 1:
        rest = [part for part in union if part != "None"]
        base = _resolve_text(rest[0]) if rest else Any
        return typing.Optional[base] if "None" in union else base
    if "[" in text and text.endswith("]"):
        head, inner = text.split("[", 1)
        head = head.strip().removeprefix("typing.").lower()
        args = _split_top(inner[:-1])
        if head in ("list", "tuple", "sequence") and args:
            return list[_resolve_text(args[0])]
        if head in ("dict", "mapping") and len(args) == 2:
            return dict[str, _resolve_text(args[1])]
        if head == "list":
            return list
        if head == "dict":
            return dict
        return None
    if text in ("list", "tuple"):
        return list
    if text == "dict":
        return dict
    return _NAMED_TYPES.get(text)


def _resolve_annotation(annotation: Any) -> Any:
    """Turn a field annotation, possibly a string, into a usable type hint."""
    if isinstance(annotation, str):
        return _resolve_text(annotation)
    return annotation


def _unwrap(tp: Any) -> Any:
    if typing.get_origin(tp) in (Union, types.UnionType):
        args = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        return args[0] if args else Any
    return tp


def _is_optional(tp: Any) -> bool:
    return typing.get_origin(tp) in (Union, types.UnionType) and type(None) in typing.get_args(tp)


def _is_struct(value: Any) -> bool:
    return (
        dataclasses.is_dataclass(value)
        and not isinstance(value, type)
        and not isinstance(value, RegexpValue)
    )


def _timedelta_ns(td: timedelta) -> int:
    return ((td.days * 86400 + td.seconds) * 10**6 + td.microseconds) * 1000


def _fraction(value: int, size: int) -> str:
    whole, part = divmod(value, size)
    if not part:
        return str(whole)
    digits = str(part).rjust(len(str(size)) - 1, "0").rstrip("0")
    return f"{whole}.{digits}"


def format_duration(td: timedelta) -> str:
    """Format a duration the way ``1h2m3.5s`` or ``500ms`` is written."""
    ns = _timedelta_ns(td)
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 10**9:
        if ns < 10**3:
            return f"{sign}{ns}ns"
        if ns < 10**6:
            return f"{sign}{_fraction(ns, 10**3)}µs"
        return f"{sign}{_fraction(ns, 10**6)}ms"
    hours, rest = divmod(ns, 3600 * 10**9)
    minutes, rest = divmod(rest, 60 * 10**9)
    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + _fraction(rest, 10**9) + "s"


def _parse_duration(key: str, value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if not value:
        return timedelta(0)
    text = value if isinstance(value, str) else ""
    body = text.lstrip("+-")
    negative = text.startswith("-")
    if not body or _PURE_NUMBER.match(text) or not _DURATION_FULL.fullmatch(body):
        raise ValueError(
            f"{key} invalid duration value: {value} please add unit (s,m,h,d), "
            "eg: 100ms, 10s, 4m, 1h"
        )
    total = sum(
        Decimal(number) * _UNIT_NS[unit] for number, unit in _DURATION_PART.findall(body)
    )
    result = timedelta(microseconds=int(total // 1000))
    return -result if negative else result


def _load_scalar(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return None


def _coerce(tp: Any, value: Any, key: str) -> Any:
    if _is_optional(tp) and value is None:
        return None
    tp = _unwrap(tp)
    origin = typing.get_origin(tp) or tp
    if origin is timedelta:
        return _parse_duration(key, value)
    if origin is RegexpValue:
        if isinstance(value, RegexpValue):
            return value
        if value is None:
            return RegexpValue()
        return RegexpValue.compile(str(value))
    if origin is bool:
        if isinstance(value, str):
            value = _load_scalar(value)
        return value if isinstance(value, bool) else False
    if origin is int:
        if isinstance(value, str):
            value = _load_scalar(value)
        if isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return 0
    if origin is float:
        if isinstance(value, str):
            value = _load_scalar(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return 0.0
    if origin is str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return ""
    if origin in (list, tuple):
        args = typing.get_args(tp)
        item_type = args[0] if args else Any
        if isinstance(value, (list, tuple)):
            return [_coerce(item_type, item, key) for item in value]
        return []
    if origin is dict:
        args = typing.get_args(tp)
        value_type = args[1] if len(args) == 2 else Any
        if isinstance(value, dict):
            return {str(k): _coerce(value_type, v, key) for k, v in value.items()}
        return {}
    return value


def _equal(left: Any, right: Any) -> bool:
    if isinstance(left, RegexpValue) or isinstance(right, RegexpValue):
        return str(left) == str(right)
    return left == right


def _json_default(value: Any) -> Any:
    if isinstance(value, timedelta):
        return _timedelta_ns(value)
    if isinstance(value, RegexpValue):
        return str(value)
    if _is_struct(value):
        return dataclasses.asdict(value)
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


def _format_number(value: Any) -> str:
    if isinstance(value, float):
        return repr(value).removesuffix(".0")
    return str(value)


def _property(
    *,
    type_: str = "",
    title: str = "",
    description: str = "",
    enum: list[dict[str, Any]] | None = None,
    items: dict[str, Any] | None = None,
    properties: dict[str, Any] | None = None,
    default: Any = None,
    decorator: str = "",
    decorator_props: dict[str, Any] | None = None,
    component: str = "",
    component_props: dict[str, Any] | None = None,
    index: int = 0,
) -> dict[str, Any]:
    out: dict[str, Any] = {"type": type_, "title": title, "description": description}
    if enum:
        out["enum"] = enum
    if items is not None:
        out["items"] = items
    if properties:
        out["properties"] = properties
    if default is not None:
        out["default"] = default
    out["x-decorator"] = decorator
    if decorator_props:
        out["x-decorator-props"] = decorator_props
    out["x-component"] = component
    if component_props:
        out["x-component-props"] = component_props
    out["x-index"] = index
    return out


def _card(
    *,
    type_: str = "void",
    component: str = "",
    properties: dict[str, Any] | None = None,
    component_props: dict[str, Any] | None = None,
    index: int = 0,
) -> dict[str, Any]:
    out: dict[str, Any] = {"type": type_}
    if properties:
        out["properties"] = properties
    out["x-component"] = component
    if component_props:
        out["x-component-props"] = component_props
    out["x-index"] = index
    return out


def _parse_enum(spec: str) -> list[dict[str, Any]]:
    entries = []
    for pair in spec.split(","):
        parts = pair.split(":")
        if len(parts) != 2:
            continue
        entries.append(
            {"label": parts[1].strip(), "value": _load_scalar(parts[0].strip())}
        )
    return entries


class ConfigNode:
    """One node of the configuration tree, bound to a settings attribute."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.modify: Any = None
        self.env: Any = None
        self.file: Any = None
        self.global_: ConfigNode | None = None
        self.default: Any = None
        self.enum: list[dict[str, Any]] = []
        self._props_map: dict[str, ConfigNode] | None = None
        self._props: list[ConfigNode] = []
        self._meta: dict[str, Any] = {}
        self._slot: _Slot | None = None
        self._hint: Any = None

    # -- structure -------------------------------------------------------

    def get(self, key: str) -> ConfigNode:
        """Return the child ``key``, creating it when missing."""
        if self._props_map is None:
            self._props_map = {}
        node = self._props_map.get(key)
        if node is None:
            node = ConfigNode(key)
            self._props_map[key] = node
            self._props.append(node)
        return node

    def has(self, key: str) -> bool:
        if self._props_map is None:
            return False
        return key.lower() in self._props_map

    def get_value(self) -> Any:
        return self._slot.get() if self._slot is not None else None

    def is_map(self) -> bool:
        value = self.get_value()
        return isinstance(value, dict) and all(
            isinstance(item, ConfigNode) for item in value.values()
        )

    def _set(self, value: Any) -> None:
        if self._slot is not None:
            self._slot.set(value)

    # -- loading ---------------------------------------------------------

    def parse(self, value: Any, *args: str) -> None:
        """Bind to ``value`` and read its defaults; ``args`` name the env prefix."""
        if value is None:
            return
        self._bind(_Slot(_Box(value), "value"), list(args), None)

    def _bind(self, slot: _Slot, prefix: list[str], hint: Any) -> None:
        self._slot = slot
        self._hint = hint
        value = slot.get()
        self.default = copy.copy(value)
        if not _is_struct(value):
            if prefix:
                env_value = os.environ.get("_".join(prefix))
                if env_value:
                    converted = self._assign(prefix[0].lower(), env_value)
                    self.env = converted
                    self._set(converted)
            return
        for fld in dataclasses.fields(value):
            if fld.name.startswith("_"):
                continue
            yaml_tag = fld.metadata.get("yaml", "")
            if yaml_tag == "-":
                continue
            if isinstance(getattr(value, fld.name), _LOCK_TYPES):
                continue
            compact = fld.name.replace("_", "")
            name = yaml_tag.split(",")[0] if yaml_tag else compact.lower()
            prop = self.get(name)
            prop._meta = dict(fld.metadata)
            prop._bind(
                _Slot(value, fld.name),
                [*prefix, compact.upper()],
                _resolve_annotation(fld.type),
            )
            prop.enum = _parse_enum(prop._meta.get("enum", ""))

    def _leaf_type(self) -> Any:
        if self._hint is not None:
            return self._hint
        value = self.get_value()
        return type(value) if value is not None else Any

    def _assign(self, key: str, value: Any) -> Any:
        return _coerce(self._leaf_type(), value, key)

    def parse_global(self, global_node: ConfigNode) -> None:
        """Fall back to the values of ``global_node``."""
        self.global_ = global_node
        if self._props_map is not None:
            for key, child in self._props_map.items():
                child.parse_global(global_node.get(key))
        elif global_node._slot is not None:
            self._set(global_node.get_value())

    @staticmethod
    def _as_mapping(key: str, value: Any) -> dict[str, Any]:
        if not isinstance(value, dict):
            raise TypeError(f"{key} expects a mapping, got {type(value).__name__}")
        return value

    def parse_default_yaml(self, data: dict[str, Any] | None) -> None:
        """Apply defaults embedded with a plugin."""
        if data is None:
            return
        for key, value in data.items():
            if not self.has(key):
                continue
            prop = self.get(key)
            if prop._props:
                if value is not None:
                    prop.parse_default_yaml(self._as_mapping(key, value))
            else:
                converted = prop._assign(key, value)
                prop.default = converted
                if prop.env is None:
                    prop._set(converted)

    def parse_user_file(self, data: dict[str, Any] | None) -> None:
        """Apply values read from the user's configuration file."""
        if data is None:
            return
        self.file = data
        for key, value in data.items():
            if not self.has(key):
                continue
            prop = self.get(key)
            if prop._props:
                if value is not None:
                    prop.parse_user_file(self._as_mapping(key, value))
            else:
                converted = prop._assign(key, value)
                prop.file = converted
                if prop.env is None:
                    prop._set(converted)

    def parse_modify_file(self, data: dict[str, Any] | None) -> None:
        """Apply runtime modifications.

        Entries equal to the value they would otherwise have are removed from
        ``data``; a node whose modifications all vanish has ``modify`` None.
        """
        if data is None:
            return
        self.modify = data
        for key, value in list(data.items()):
            if not self.has(key):
                continue
            prop = self.get(key)
            if prop._props:
                if value is not None:
                    mapping = self._as_mapping(key, value)
                    prop.parse_modify_file(mapping)
                    if not mapping:
                        del data[key]
                continue
            converted = prop._assign(key, value)
            fallback = prop._value_without_modify()
            if _equal(fallback, converted):
                del data[key]
                if prop.modify is not None:
                    prop.modify = None
                    prop._set(fallback)
                continue
            prop.modify = converted
            prop._set(converted)
        if not data:
            self.modify = None

    def _value_without_modify(self) -> Any:
        if self.env is not None:
            return self.env
        if self.file is not None:
            return self.file
        if self.global_ is not None:
            return self.global_.get_value()
        return self.default

    # -- output ----------------------------------------------------------

    def get_map(self) -> dict[str, Any] | None:
        """Return the effective values as nested dicts, or None when empty."""
        result: dict[str, Any] = {}
        for key, child in (self._props_map or {}).items():
            if child._props:
                nested = child.get_map()
                if nested is not None:
                    result[key] = nested
            elif child.get_value() is not None:
                result[key] = child.get_value()
        return result or None

    def _jsonable(self) -> Any:
        if self._props_map is None:
            return self.get_value()
        return {key: child._jsonable() for key, child in self._props_map.items()}

    def to_json(self) -> str:
        """Encode the effective values as JSON; durations become nanoseconds."""
        return json.dumps(
            self._jsonable(), ensure_ascii=False, default=_json_default, sort_keys=True
        )

    def _is_deprecated(self) -> bool:
        return str(self._meta.get("desc", "")).startswith(_DEPRECATED)

    def _schema(self, index: int) -> dict[str, Any]:
        if self._props:
            properties = {
                child.name: child._schema(i)
                for i, child in enumerate(self._props)
                if not child._is_deprecated()
            }
            return _card(
                component="Card",
                properties=properties,
                component_props={"title": self.name},
                index=index,
            )

        value = self.get_value()
        if self.modify is not None:
            description = "已动态修改"
        elif self.env is not None:
            description = "使用环境变量中的值"
        elif self.file is not None:
            description = "使用配置文件中的值"
        elif self.global_ is not None:
            description = "已使用全局配置中的值"
        else:
            description = ""
        decorator_props: dict[str, Any] = {"tooltip": self._meta.get("desc", "")}
        component_props: dict[str, Any] = {}
        default: Any = value
        type_ = component = ""

        kind = _unwrap(self._leaf_type())
        origin = typing.get_origin(kind) or kind
        if origin is RegexpValue:
            text = str(value) if value is not None else ""
            type_, component = "string", "Input"
            decorator_props["addonAfter"] = "正则表达式"
            component_props = {"placeholder": text}
            default = text
        elif origin is timedelta:
            text = format_duration(value or timedelta(0))
            type_, component = "string", "Input"
            component_props = {"placeholder": text}
            default = text
            decorator_props["addonAfter"] = "时间,单位：s,m,h,d，例如：100ms, 10s, 4m, 1h"
        elif origin is bool:
            type_, component = "boolean", "Switch"
        elif origin in (int, float):
            type_, component = "number", "InputNumber"
            component_props = {"placeholder": _format_number(value)}
        elif origin is str:
            type_, component = "string", "Input"
            component_props = {"placeholder": value}
        elif origin in (list, tuple):
            type_, component = "array", "Input"
            component_props = {"placeholder": value}
            decorator_props["addonAfter"] = "数组，每个元素用逗号分隔"
        elif origin is dict:
            return self._map_schema(index, value)

        return _property(
            type_=type_,
            title=self.name,
            description=description,
            enum=self.enum,
            default=default,
            decorator="FormItem",
            decorator_props=decorator_props,
            component="Radio.Group" if self.enum else component,
            component_props=component_props,
            index=index,
        )

    def _map_schema(self, index: int, value: dict[str, Any] | None) -> dict[str, Any]:
        def column(title: Any, field_name: str, position: int, width: int | None) -> dict:
            props: dict[str, Any] = {"title": title}
            if width is not None:
                props["width"] = width
            return _card(
                component="ArrayTable.Column",
                component_props=props,
                properties={
                    field_name: _property(
                        type_="string", decorator="FormItem", component="Input"
                    )
                },
                index=position,
            )

        children = None
        if value is not None:
            children = [{"mkey": str(k), "mvalue": v} for k, v in value.items()]
        items = {
            "type": "object",
            "properties": {
                "c1": column(self._meta.get("key", ""), "mkey", 0, 300),
                "c2": column(self._meta.get("value", ""), "mvalue", 1, None),
                "operator": _card(
                    component="ArrayTable.Column",
                    component_props={"title": "操作"},
                    properties={"remove": _card(component="ArrayTable.Remove")},
                    index=2,
                ),
            },
        }
        return _property(
            type_="array",
            title=self.name,
            items=items,
            properties={
                "addition": {
                    "type": "void",
                    "title": "添加",
                    "x-component": "ArrayTable.Addition",
                }
            },
            default=children,
            decorator="FormItem",
            component="ArrayTable",
            index=index,
        )

    def get_formily(self) -> dict[str, Any]:
        """Return a form schema describing every non-deprecated child."""
        form_items = {
            child.name: child._schema(i)
            for i, child in enumerate(self._props)
            if not child._is_deprecated()
        }
        return {
            "type": "object",
            "properties": {
                "layout": _card(
                    component="FormLayout",
                    component_props={"labelCol": 4, "wrapperCol": 20},
                    properties=form_items,
                )
            },
        }