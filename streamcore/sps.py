"""H.264 sequence parameter set parsing."""

from __future__ import annotations

from dataclasses import dataclass

_HIGH_PROFILES = frozenset({100, 110, 122, 244, 44, 83, 86, 118})


@dataclass
class SpsInfo:
    """Picture geometry and profile read from an SPS."""

    profile_idc: int = 0
    level_idc: int = 0
    mb_width: int = 0
    mb_height: int = 0
    crop_left: int = 0
    crop_right: int = 0
    crop_top: int = 0
    crop_bottom: int = 0
    width: int = 0
    height: int = 0


class _BitReader:
    """Big-endian bit reader with Exp-Golomb decoding."""

    def __init__(self, data: bytes) -> None:
        self._value = int.from_bytes(data, "big")
        self._size = len(data) * 8
        self._pos = 0

    def bits(self, count: int) -> int:
        if self._pos + count > self._size:
            raise EOFError("SPS ended before all fields were read")
        self._pos += count
        return (self._value >> (self._size - self._pos)) & ((1 << count) - 1)

    def bit(self) -> int:
        return self.bits(1)

    def ue(self) -> int:
        zeros = 0
        while self.bit() == 0:
            zeros += 1
        return (1 << zeros) - 1 + self.bits(zeros)

    def se(self) -> int:
        code = self.ue()
        return (code + 1) // 2 if code & 1 else -(code // 2)


def _skip_scaling_list(reader: _BitReader, size: int) -> None:
    last_scale = next_scale = 8
    for _ in range(size):
        if next_scale:
            next_scale = (last_scale + reader.se() + 256) % 256
        if next_scale:
            last_scale = next_scale


def parse_sps(data: bytes) -> SpsInfo:
    """Parse an H.264 SPS NAL unit, including its one-byte NAL header.

    Raises ``EOFError`` when the data ends before the cropping fields.
    """
    reader = _BitReader(bytes(data))
    info = SpsInfo()
    reader.bits(8)  # NAL header
    info.profile_idc = reader.bits(8)
    reader.bits(8)  # constraint flags
    info.level_idc = reader.bits(8)
    reader.ue()  # seq_parameter_set_id

    if info.profile_idc in _HIGH_PROFILES:
        if reader.ue() == 3:  # chroma_format_idc
            reader.bit()  # separate_colour_plane_flag
        reader.ue()  # bit_depth_luma_minus8
        reader.ue()  # bit_depth_chroma_minus8
        reader.bit()  # qpprime_y_zero_transform_bypass_flag
        if reader.bit():  # seq_scaling_matrix_present_flag
            for index in range(8):
                if reader.bit():
                    _skip_scaling_list(reader, 16 if index < 6 else 64)

    reader.ue()  # log2_max_frame_num_minus4
    pic_order_cnt_type = reader.ue()
    if pic_order_cnt_type == 0:
        reader.ue()  # log2_max_pic_order_cnt_lsb_minus4
    elif pic_order_cnt_type == 1:
        reader.bit()  # delta_pic_order_always_zero_flag
        reader.se()  # offset_for_non_ref_pic
        reader.se()  # offset_for_top_to_bottom_field
        for _ in range(reader.ue()):
            reader.se()

    reader.ue()  # max_num_ref_frames
    reader.bit()  # gaps_in_frame_num_value_allowed_flag
    info.mb_width = reader.ue() + 1
    info.mb_height = reader.ue() + 1

    frame_mbs_only = reader.bit()
    if not frame_mbs_only:
        reader.bit()  # mb_adaptive_frame_field_flag
    reader.bit()  # direct_8x8_inference_flag

    if reader.bit():  # frame_cropping_flag
        info.crop_left = reader.ue()
        info.crop_right = reader.ue()
        info.crop_top = reader.ue()
        info.crop_bottom = reader.ue()

    info.width = info.mb_width * 16 - info.crop_left * 2 - info.crop_right * 2
    info.height = (
        (2 - frame_mbs_only) * info.mb_height * 16
        - info.crop_top * 2
        - info.crop_bottom * 2
    )
    return info