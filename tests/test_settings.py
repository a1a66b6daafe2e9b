from datetime import timedelta

import pytest

from streamcore.settings import (
    Console,
    EngineSettings,
    HTTPSettings,
    Publish,
    Pull,
    Push,
    RegexpValue,
    Subscribe,
    get_global,
)


def test_regexp_value_unset_is_invalid_and_empty():
    value = RegexpValue()
    assert value.valid() is False
    assert str(value) == ""


def test_regexp_value_json_round_trip():
    value = RegexpValue.compile(r"live/\d+")
    restored = RegexpValue.from_json(value.to_json())
    assert restored.valid()
    assert str(restored) == r"live/\d+"


def test_regexp_value_from_empty_json_is_unset():
    assert RegexpValue.from_json(b"").valid() is False


def test_publish_defaults_from_source():
    publish = Publish()
    assert publish.publish_timeout == timedelta(seconds=10)
    assert publish.speed_limit == timedelta(milliseconds=500)
    assert publish.ring_size == "256-1024"


def test_publish_config_is_a_copy():
    publish = Publish()
    copy = publish.get_publish_config()
    copy.kick_exist = True
    assert publish.kick_exist is False
    assert copy == Publish(kick_exist=True)


def test_subscribe_config_is_same_object():
    subscribe = Subscribe()
    assert subscribe.get_subscribe_config() is subscribe
    assert subscribe.sub_video_arg_name == "vts"


def test_pull_on_sub_exact_match():
    pull = Pull(pull_on_sub={"live/a": "rtmp://example.com/a"})
    assert pull.check_pull_on_sub("live/a") == "rtmp://example.com/a"
    assert pull.check_pull_on_sub("live/b") == ""


def test_pull_without_table_returns_empty():
    pull = Pull(enable_regexp=True)
    assert pull.check_pull_on_sub("live/a") == ""
    assert pull.check_pull_on_start("live/a") == ""


def test_pull_on_sub_regexp_substitutes_groups():
    pull = Pull(enable_regexp=True, pull_on_sub={"live/(.*)": "rtmp://example.com/$1"})
    assert pull.check_pull_on_sub("live/abc") == "rtmp://example.com/abc"


def test_pull_on_start_regexp_whole_match():
    pull = Pull(enable_regexp=True, pull_on_start={"cam(\\d)": "rtsp://example.com/$0"})
    assert pull.check_pull_on_start("cam7") == "rtsp://example.com/cam7"


def test_pull_regexp_disabled_ignores_patterns():
    pull = Pull(pull_on_sub={"live/(.*)": "rtmp://example.com/$1"})
    assert pull.check_pull_on_sub("live/abc") == ""


def test_push_add_and_check():
    push = Push()
    push.add_push("rtmp://example.com/out", "live/x")
    assert push.push_list == {"live/x": "rtmp://example.com/out"}
    assert push.check_push("live/x") == "rtmp://example.com/out"
    assert push.check_push("live/y") == ""


def test_push_regexp():
    push = Push(enable_regexp=True, push_list={"in/(\\w+)": "rtmp://example.com/$1"})
    assert push.check_push("in/foo") == "rtmp://example.com/foo"


def test_console_default_server():
    assert Console().server == "console.monibuca.com:44944"


def test_http_handle_applies_middleware_and_routes():
    http = HTTPSettings()
    seen = []

    def middleware(path, handler):
        seen.append(path)
        return lambda: ("wrapped", handler())

    http.add_middleware(middleware)
    http.handle("/api/", lambda: "inner")
    handler, pattern = http.handler("/api/summary")
    assert pattern == "/api/"
    assert handler() == ("wrapped", "inner")
    assert seen == ["/api/"]


def test_http_handler_missing_route():
    http = HTTPSettings()
    http.handle("/exact", lambda: None)
    assert http.handler("/other") == (None, "")


def test_engine_settings_defaults_and_report_state():
    settings = EngineSettings()
    assert settings.get_enable_report() is False
    assert settings.get_instance_id() == ""
    assert settings.event_bus_size == 10
    assert settings.rtp_reorder_buffer_len == 50


def test_init_default_http_sets_global_and_addresses():
    settings = EngineSettings()
    settings.init_default_http()
    assert get_global() is settings
    assert settings.http.listen_addr == ":8080"
    assert settings.http.listen_addr_tls == ":8443"


@pytest.mark.parametrize("name", ["publish", "subscribe"])
def test_engine_settings_delegates(name):
    settings = EngineSettings()
    if name == "publish":
        assert settings.get_publish_config() == settings.publish
    else:
        assert settings.get_subscribe_config() is settings.subscribe