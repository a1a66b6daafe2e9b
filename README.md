# streamcore

Building blocks for a live streaming media engine:

- **MPEG transport stream** reading and writing:
  - `streamcore.mpegts`: TS packet headers (`read_ts_header`, `write_ts_header`,
    `read_ts_packet`) and `TsStream`, a demultiplexer whose `feed` method
    yields PES packets.
  - `streamcore.psi`: generic PSI sections (`read_psi`, `write_psi`) and the
    program association table (`read_pat`, `write_pat`, `write_pat_packet`,
    `write_default_pat_packet`).
  - `streamcore.pmt`: the program map table (`read_pmt`, `write_pmt`) and
    `write_pmt_packet`, which writes a fixed 188-byte PMT packet for one
    program with a chosen video and audio codec.
  - `streamcore.pes`: PES headers (`read_pes_header`, `write_pes_header`).
  - `streamcore.crc32`: the MPEG-2 CRC-32 (`get_crc32`, `get_crc32_buffers`).
- **H.264 sequence parameter set** parsing (`streamcore.sps.parse_sps`):
  profile, level, macroblock size, cropping and the picture width and height.
- **Settings** (`streamcore.settings`): dataclasses `Publish`, `Subscribe`,
  `Pull`, `Push`, `Console`, `HTTPSettings` and `EngineSettings` with their
  defaults. `Pull.check_pull_on_start`, `Pull.check_pull_on_sub` and
  `Push.check_push` look a stream path up in their tables, optionally by
  regular expression with `$0`, `$1`, … substituted from the match.
- **Layered configuration** (`streamcore.config.ConfigNode`): binds to a
  settings dataclass and writes the effective value of each field back into
  it. Highest priority first: a runtime change (`parse_modify_file`), an
  environment variable, the user's configuration file (`parse_user_file`),
  built-in default YAML (`parse_default_yaml`), the global configuration
  (`parse_global`), or the dataclass default. `get_map`, `to_json` and
  `get_formily` (a form schema for editing) report the result.
- A small **logger** (`streamcore.log.Logger`) with bound fields, named
  children and optional translation of messages and field names; extra
  outputs are added with `add_writer` and removed with `delete_writer`.
  `streamcore.lang` holds the translation table.

## Installation

```
pip install .
```

Run the tests with:

```
pip install .[test]
pytest
```

## Examples

Demultiplex a transport stream file into PES packets:

```python
from streamcore.mpegts import TsStream

stream = TsStream()
with open("capture.ts", "rb") as source:
    for pes in stream.feed(source):
        print(hex(pes.header.stream_id), pes.header.pts, len(pes.payload))
```

Write a PAT and a PMT for an H.264 + AAC program:

```python
import io
from streamcore.psi import write_default_pat_packet
from streamcore.pmt import write_pmt_packet, VideoCodec, AudioCodec

out = io.BytesIO()
write_default_pat_packet(out)
write_pmt_packet(out, VideoCodec.H264, AudioCodec.AAC)
assert len(out.getvalue()) == 2 * 188
```

Read the picture size from an H.264 SPS NAL unit (including its NAL header
byte):

```python
from streamcore.sps import parse_sps

info = parse_sps(sps_bytes)
print(info.width, info.height)
```

Layer configuration values:

```python
from streamcore.config import ConfigNode
from streamcore.settings import EngineSettings

settings = EngineSettings()
root = ConfigNode()
root.parse(settings, "GLOBAL")
root.parse_user_file({"publish": {"kickexist": True}})
root.parse_modify_file({"publish": {"pubaudio": False}})
assert settings.publish.kick_exist is True
assert settings.publish.pub_audio is False
print(root.get_map())
```

Keys are field names lower-cased with underscores removed; the environment
variable for a field joins the prefix and those names in upper case, for
example `GLOBAL_PUBLISH_KICKEXIST`. Durations are written with units such as
`500ms`, `10s` or `4m`.

## What it does not do

This package is a library of codecs and configuration pieces, not a running
media server. It has no command, opens no network sockets and serves no
HTTP: `HTTPSettings` only records routes and middleware and looks a handler
up by path. It does not read or write MPEG-4 files, RTP, or H.265 parameter
sets, and it keeps no streams, publishers or subscribers. Saved
configuration is whatever the caller does with `get_map` or `to_json`; the
package writes no files itself.

`streamcore.lang.is_terminal_support_chinese` runs `echo` to check the
terminal, and `lang.get("zh")` calls it on Linux.