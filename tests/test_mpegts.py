import io

import pytest

from streamcore.mpegts import (
    TsError,
    TsHeader,
    TsStream,
    read_ts_header,
    read_ts_packet,
    write_ts_header,
)
from streamcore.pes import STREAM_ID_AUDIO, STREAM_ID_VIDEO, PesHeader, write_pes_header
from streamcore.pmt import (
    PID_AUDIO,
    PID_VIDEO,
    STREAM_TYPE_AAC,
    STREAM_TYPE_H264,
    AudioCodec,
    VideoCodec,
    write_pmt_packet,
)
from streamcore.psi import DEFAULT_PAT_PACKET, TS_PACKET_SIZE


def make_ts_packet(pid, pusi, payload, cc=0):
    out = io.BytesIO()
    if len(payload) >= 184:
        assert len(payload) == 184
        write_ts_header(
            out,
            TsHeader(pid=pid, payload_unit_start_indicator=pusi, continuity_counter=cc),
        )
        out.write(payload)
    else:
        afl = 183 - len(payload)
        written = write_ts_header(
            out,
            TsHeader(
                pid=pid,
                payload_unit_start_indicator=pusi,
                continuity_counter=cc,
                adaption_field_control=3,
                adaptation_field_length=afl,
            ),
        )
        stuffing = afl - 1 if afl >= 1 else 0
        out.write(b"\xff" * stuffing)
        assert written + stuffing + len(payload) == TS_PACKET_SIZE
        out.write(payload)
    data = out.getvalue()
    assert len(data) == TS_PACKET_SIZE
    return data


def pes_bytes(stream_id, pts, dts=None, length=0):
    out = io.BytesIO()
    if dts is None:
        header = PesHeader(
            stream_id=stream_id,
            pes_packet_length=length,
            pts_dts_flags=0x80,
            pes_header_data_length=5,
            pts=pts,
        )
    else:
        header = PesHeader(
            stream_id=stream_id,
            pes_packet_length=length,
            pts_dts_flags=0xC0,
            pes_header_data_length=10,
            pts=pts,
            dts=dts,
        )
    write_pes_header(out, header)
    return out.getvalue()


def pmt_packet():
    out = io.BytesIO()
    write_pmt_packet(out, VideoCodec.H264, AudioCodec.AAC)
    return out.getvalue()


def test_write_basic_header_bytes():
    out = io.BytesIO()
    written = write_ts_header(
        out, TsHeader(pid=0x101, payload_unit_start_indicator=1, continuity_counter=5)
    )
    assert written == 4
    assert out.getvalue() == bytes([0x47, 0x41, 0x01, 0x15])


def test_header_round_trip_with_pcr():
    header = TsHeader(
        pid=PID_VIDEO,
        payload_unit_start_indicator=1,
        adaption_field_control=3,
        adaptation_field_length=7,
        pcr_flag=1,
        random_access_indicator=1,
        program_clock_reference_base=90000,
        continuity_counter=9,
    )
    out = io.BytesIO()
    written = write_ts_header(out, header)
    assert written == len(out.getvalue())
    back = read_ts_header(io.BytesIO(out.getvalue()))
    assert back.pid == PID_VIDEO
    assert back.payload_unit_start_indicator == 1
    assert back.continuity_counter == 9
    assert back.pcr_flag == 1
    assert back.random_access_indicator == 1
    assert back.program_clock_reference_base == 90000
    assert back.adaptation_field_length == 7


def test_write_rejects_bad_sync():
    with pytest.raises(TsError):
        write_ts_header(io.BytesIO(), TsHeader(sync_byte=0))


def test_read_rejects_bad_sync():
    with pytest.raises(TsError):
        read_ts_header(io.BytesIO(b"\x00\x40\x00\x10"))


def test_read_default_pat_header():
    header = read_ts_header(io.BytesIO(DEFAULT_PAT_PACKET))
    assert header.pid == 0
    assert header.payload_unit_start_indicator == 1
    assert header.adaption_field_control == 1
    assert header.continuity_counter == 0


def test_read_ts_packet_payload():
    packet = read_ts_packet(io.BytesIO(DEFAULT_PAT_PACKET))
    assert packet.header.pid == 0
    assert packet.payload == DEFAULT_PAT_PACKET[4:]


def test_read_ts_packet_short_input():
    with pytest.raises(EOFError):
        read_ts_packet(io.BytesIO(DEFAULT_PAT_PACKET[:100]))


def test_feed_tables_only():
    stream = TsStream()
    result = list(stream.feed(io.BytesIO(DEFAULT_PAT_PACKET + pmt_packet())))
    assert result == []
    assert [s.stream_type for s in stream.pmt.streams] == [STREAM_TYPE_H264, STREAM_TYPE_AAC]
    assert set(stream.pes_buffer) == {PID_VIDEO, PID_AUDIO}
    assert stream.pat.programs[0].program_map_pid == 0x100


def test_feed_assembles_pes_packets():
    video_a_head = pes_bytes(STREAM_ID_VIDEO, pts=3600, dts=1800)
    es_a1 = bytes(i % 251 for i in range(184 - len(video_a_head)))
    es_a2 = bytes((i * 7) % 256 for i in range(100))
    audio_es = b"audio-frame"
    audio_head = pes_bytes(
        STREAM_ID_AUDIO, pts=4000, length=3 + 5 + len(audio_es)
    )
    video_c_head = pes_bytes(STREAM_ID_VIDEO, pts=7200, dts=5400)
    es_c = b"next-video"

    data = b"".join(
        [
            DEFAULT_PAT_PACKET,
            pmt_packet(),
            make_ts_packet(PID_VIDEO, 1, video_a_head + es_a1, cc=0),
            make_ts_packet(PID_VIDEO, 0, es_a2, cc=1),
            make_ts_packet(PID_AUDIO, 1, audio_head + audio_es, cc=0),
            make_ts_packet(PID_VIDEO, 1, video_c_head + es_c, cc=2),
        ]
    )
    result = list(TsStream().feed(io.BytesIO(data)))
    assert len(result) == 3
    first, second, third = result

    assert first.header.stream_id == STREAM_ID_VIDEO
    assert first.header.pts == 3600
    assert first.header.dts == 1800
    assert bytes(first.payload) == es_a1 + es_a2

    assert second.header.pts == 7200
    assert bytes(second.payload) == es_c

    assert third.header.stream_id == STREAM_ID_AUDIO
    assert third.header.pts == 4000
    assert bytes(third.payload) == audio_es
    assert third.header.payload_length == len(audio_es)


def test_feed_ignores_unknown_pid():
    data = DEFAULT_PAT_PACKET + pmt_packet() + make_ts_packet(0x1FF, 1, b"junk")
    stream = TsStream()
    assert list(stream.feed(io.BytesIO(data))) == []
    assert all(value is None for value in stream.pes_buffer.values())


def test_feed_partial_packet_raises():
    data = DEFAULT_PAT_PACKET + pmt_packet()[:50]
    with pytest.raises(EOFError):
        list(TsStream().feed(io.BytesIO(data)))


def test_feed_bad_sync_raises():
    data = DEFAULT_PAT_PACKET + b"\x00" * TS_PACKET_SIZE
    with pytest.raises(TsError):
        list(TsStream().feed(io.BytesIO(data)))