import io
import json

import pytest

from streamcore import log
from streamcore.log import Logger, MultipleWriter, add_writer, delete_writer


@pytest.fixture
def sink():
    buffer = io.StringIO()
    previous = log.get_level()
    log.set_level("debug")
    add_writer(buffer)
    yield buffer
    delete_writer(buffer)
    log.set_level(previous)


def _last_line(buffer):
    return buffer.getvalue().splitlines()[-1].split("\t")


def test_info_writes_level_name_and_message(sink):
    Logger().named("engine").info("hello")
    parts = _last_line(sink)
    assert parts[1:] == ["INFO", "engine", "hello"]


def test_named_nests_names(sink):
    Logger().named("a").named("b").warn("msg")
    assert _last_line(sink)[2] == "a.b"


def test_bind_and_call_fields_are_merged(sink):
    Logger().bind(stream="live/a").error("oops", code=3)
    fields = json.loads(_last_line(sink)[-1])
    assert fields == {"stream": "live/a", "code": 3}


def test_lang_translates_message_and_keys(sink):
    logger = Logger().lang({"start": "开始", "path": "路径"})
    logger.bind(path="x").info("start")
    parts = _last_line(sink)
    assert parts[-2] == "开始"
    assert json.loads(parts[-1]) == {"路径": "x"}


def test_level_filters_lower_entries(sink):
    log.set_level("info")
    Logger().debug("hidden")
    Logger().trace("hidden too")
    assert sink.getvalue() == ""


def test_parse_level_rejects_unknown():
    with pytest.raises(ValueError):
        log.parse_level("loud")


def test_fatal_exits(sink):
    with pytest.raises(SystemExit):
        Logger().fatal("bye")
    assert "FATAL" in sink.getvalue()


def test_sugar_functions_join_and_format(sink):
    log.info("a", 1)
    assert _last_line(sink)[-1] == "a 1"
    log.errorf("%s=%d", "n", 5)
    assert _last_line(sink)[-1] == "n=5"


def test_delete_writer_stops_output(sink):
    other = io.StringIO()
    add_writer(other)
    delete_writer(other)
    Logger().info("after")
    assert other.getvalue() == ""
    assert "after" in sink.getvalue()


def test_multiple_writer_fans_out_and_drops_failing():
    writer = MultipleWriter()
    good = io.StringIO()
    bad = io.StringIO()
    bad.close()
    writer.add(good)
    writer.add(bad)
    assert writer.write("data") == 4
    assert good.getvalue() == "data"
    assert bad not in writer
    assert good in writer


def test_multiple_writer_remove():
    writer = MultipleWriter()
    target = io.StringIO()
    writer.add(target)
    writer.remove(target)
    writer.write("x")
    assert target.getvalue() == ""