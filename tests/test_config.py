from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import timedelta

import pytest

from streamcore.config import ConfigNode, format_duration
from streamcore.settings import Publish, RegexpValue, Subscribe


@dataclass
class SubscribeHolder:
    subscribe: Subscribe = field(default_factory=Subscribe)


@dataclass
class PublishHolder:
    publish: Publish = field(default_factory=Publish)


@dataclass
class Sample:
    name: str = "demo"
    count: int = 3
    enabled: bool = True
    timeout: timedelta = timedelta(seconds=10)
    mode: int = field(default=0, metadata={"enum": "0:real,1:lazy", "desc": "mode"})
    old: str = field(default="", metadata={"desc": "废弃 old"})
    mapping: dict[str, str] | None = None
    tags: list[str] = field(default_factory=list)
    pattern: RegexpValue = field(default_factory=RegexpValue)


def _bound(prefix: str | None = None) -> tuple[Sample, ConfigNode]:
    sample = Sample()
    node = ConfigNode()
    if prefix:
        node.parse(sample, prefix)
    else:
        node.parse(sample)
    return sample, node


def test_modify():
    holder = SubscribeHolder()
    holder.subscribe.sub_audio = False
    conf = ConfigNode()
    conf.parse(holder)
    conf.parse_modify_file({"subscribe": {"subaudio": False}})
    assert conf.modify is None
    conf.parse_modify_file({"subscribe": {"subaudio": True}})
    assert conf.modify is not None
    assert holder.subscribe.sub_audio is True


def test_global():
    default_value = PublishHolder()
    global_value = PublishHolder()
    global_value.publish.kick_exist = True
    conf = ConfigNode()
    global_conf = ConfigNode()
    global_conf.parse(global_value)
    conf.parse(default_value)
    conf.parse_global(global_conf)
    assert default_value.publish.kick_exist is True


def test_has_is_case_insensitive():
    _, node = _bound()
    assert node.has("COUNT") is True
    assert node.has("missing") is False


def test_user_file_sets_value_and_coerces():
    sample, node = _bound()
    node.parse_user_file({"count": "12", "enabled": "false", "name": "cam"})
    assert sample.count == 12
    assert sample.enabled is False
    assert sample.name == "cam"
    assert node.get("count").file == 12


def test_env_overrides_file_and_default_yaml(monkeypatch):
    monkeypatch.setenv("STREAMCORETEST_NAME", "envname")
    monkeypatch.setenv("STREAMCORETEST_COUNT", "7")
    sample, node = _bound("STREAMCORETEST")
    assert sample.count == 7
    assert node.get("count").env == 7
    node.parse_default_yaml({"name": "fromyaml"})
    node.parse_user_file({"name": "fromfile"})
    assert sample.name == "envname"
    assert node.get("name").file == "fromfile"
    assert node.get("name").default == "fromyaml"


def test_default_yaml_sets_default():
    sample, node = _bound()
    node.parse_default_yaml({"name": "fromyaml"})
    assert sample.name == "fromyaml"
    assert node.get("name").default == "fromyaml"


def test_modify_reverts_to_file_value():
    sample, node = _bound()
    node.parse_user_file({"count": 5})
    node.parse_modify_file({"count": 5})
    assert node.modify is None
    assert sample.count == 5
    node.parse_modify_file({"count": 9})
    assert sample.count == 9
    assert node.get("count").modify == 9
    node.parse_modify_file({"count": 5})
    assert node.get("count").modify is None
    assert sample.count == 5


def test_duration_values():
    sample, node = _bound()
    node.parse_user_file({"timeout": "1m30s"})
    assert sample.timeout == timedelta(seconds=90)
    node.parse_user_file({"timeout": "100ms"})
    assert sample.timeout == timedelta(milliseconds=100)


@pytest.mark.parametrize("bad", ["10", "abc", "5d"])
def test_invalid_duration_raises(bad):
    _, node = _bound()
    with pytest.raises(ValueError):
        node.parse_user_file({"timeout": bad})


@pytest.mark.parametrize(
    "value, text",
    [
        (timedelta(0), "0s"),
        (timedelta(seconds=10), "10s"),
        (timedelta(milliseconds=500), "500ms"),
        (timedelta(seconds=90), "1m30s"),
        (timedelta(hours=1, seconds=1.5), "1h0m1.5s"),
    ],
)
def test_format_duration(value, text):
    assert format_duration(value) == text


def test_regexp_value():
    sample, node = _bound()
    node.parse_user_file({"pattern": "^live/.*"})
    assert sample.pattern.valid()
    assert str(sample.pattern) == "^live/.*"


def test_non_mapping_for_struct_raises():
    holder = SubscribeHolder()
    conf = ConfigNode()
    conf.parse(holder)
    with pytest.raises(TypeError):
        conf.parse_user_file({"subscribe": 5})


def test_get_map_skips_none():
    _, node = _bound()
    values = node.get_map()
    assert values["name"] == "demo"
    assert values["count"] == 3
    assert "mapping" not in values
    assert node.get("mapping").is_map() is False


def test_get_map_nested():
    holder = SubscribeHolder()
    conf = ConfigNode()
    conf.parse(holder)
    assert conf.get_map()["subscribe"]["subvideoargname"] == "vts"


def test_to_json():
    _, node = _bound()
    data = json.loads(node.to_json())
    assert data["timeout"] == 10_000_000_000
    assert data["pattern"] == ""
    assert data["name"] == "demo"


def test_formily_schema():
    _, node = _bound()
    node.parse_user_file({"count": 5})
    items = node.get_formily()["properties"]["layout"]["properties"]
    assert "old" not in items
    assert items["name"]["type"] == "string"
    assert items["count"]["x-component"] == "InputNumber"
    assert items["count"]["description"] == "使用配置文件中的值"
    assert items["enabled"]["x-component"] == "Switch"
    assert items["timeout"]["default"] == "10s"
    assert items["mode"]["x-component"] == "Radio.Group"
    assert items["mode"]["enum"] == [
        {"label": "real", "value": 0},
        {"label": "lazy", "value": 1},
    ]
    assert items["mapping"]["type"] == "array"
    assert "default" not in items["mapping"]


def test_formily_map_default():
    sample = Sample(mapping={"live/a": "rtmp://example.com/a"})
    node = ConfigNode()
    node.parse(sample)
    items = node.get_formily()["properties"]["layout"]["properties"]
    assert items["mapping"]["x-component"] == "ArrayTable"
    assert items["mapping"]["default"] == [
        {"mkey": "live/a", "mvalue": "rtmp://example.com/a"}
    ]


def test_formily_nested_card():
    holder = PublishHolder()
    conf = ConfigNode()
    conf.parse(holder)
    card = conf.get_formily()["properties"]["layout"]["properties"]["publish"]
    assert card["x-component"] == "Card"
    assert card["x-component-props"] == {"title": "publish"}
    assert card["properties"]["speedlimit"]["default"] == "500ms"