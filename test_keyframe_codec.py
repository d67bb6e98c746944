#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                    KEYFRAME CODEC TESTS                                      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import pytest

from keyframe_codec import (
    KEYFRAME_CODES,
    KeyframeDecodeError,
    decode_keyframes,
    encode_keyframes,
    normalize_keyframes,
    normalize_properties,
    parse_color,
)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class TestDecode:
    def test_two_records(self):
        assert decode_keyframes("0X100Y100 10X150") == {
            0: {"x": 100.0, "y": 100.0},
            10: {"x": 150.0},
        }

    def test_every_code_is_known(self):
        assert set(KEYFRAME_CODES) == set("XYABCDRLTFV")

    def test_lowercase_codes(self):
        assert decode_keyframes("0x100y100 10x150") == {0: {"x": 100, "y": 100}, 10: {"x": 150}}

    def test_negative_and_fractional(self):
        assert decode_keyframes("0R-45.5L0.25") == {0: {"r": -45.5, "a": 0.25}}

    def test_color_transform_list(self):
        assert decode_keyframes("0F1,0,1,0,0.5,10") == {0: {"c": [1.0, 0.0, 1.0, 0.0, 0.5, 10.0]}}

    def test_visibility_is_bool(self):
        assert decode_keyframes("3V0 4V1") == {3: {"v": False}, 4: {"v": True}}

    def test_tint_number(self):
        assert decode_keyframes("0T16711680") == {0: {"t": 16711680.0}}

    def test_empty(self):
        assert decode_keyframes("") == {}

    def test_record_without_codes_is_dropped(self):
        assert decode_keyframes("5 0X1") == {0: {"x": 1.0}}

    def test_trailing_space(self):
        assert decode_keyframes("0X1 ") == {0: {"x": 1.0}}

    def test_unknown_code(self):
        with pytest.raises(KeyframeDecodeError, match="Unknown keyframe code 'Q'"):
            decode_keyframes("0Q1")

    def test_bad_frame_number(self):
        with pytest.raises(KeyframeDecodeError, match="Invalid frame number"):
            decode_keyframes("1.5X3")

    def test_bad_value_reports_offset(self):
        with pytest.raises(KeyframeDecodeError, match=r"at offset 2") as info:
            decode_keyframes("0X1.2.3")
        assert info.value.position == 2

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            decode_keyframes("0Z")


class TestNormalizeKeyframes:
    def test_string_keys_become_ints_in_order(self):
        result = normalize_keyframes({"10": {"x": 1}, "2": {"y": 2}})
        assert list(result) == [2, 10]
        assert result[10] == {"x": 1}

    def test_string_input_is_decoded(self):
        assert normalize_keyframes("4X1 0X0") == {0: {"x": 0.0}, 4: {"x": 1.0}}

    def test_none(self):
        assert normalize_keyframes(None) == {}

    def test_bad_key(self):
        with pytest.raises(KeyframeDecodeError):
            normalize_keyframes({"first": {"x": 1}})


# ---------------------------------------------------------------------------
# Property coercion
# ---------------------------------------------------------------------------


class TestProperties:
    def test_parse_color(self):
        assert parse_color("#ff8800") == 0xFF8800
        assert parse_color("red") == 0xFF0000
        assert parse_color(255) == 255
        assert parse_color(16711680.0) == 0xFF0000

    def test_parse_color_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_color("not-a-colour")

    def test_normalize_properties(self):
        original = {"t": "#00ff00", "v": 0, "x": 3}
        props = normalize_properties(original)
        assert props == {"t": 0x00FF00, "v": False, "x": 3}
        assert original["t"] == "#00ff00"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


class TestEncode:
    def test_matches_compact_form(self):
        assert encode_keyframes({0: {"x": 100, "y": 100}, 10: {"x": 150}}) == "0X100Y100 10X150"

    def test_lists_and_flags(self):
        encoded = encode_keyframes({2: {"c": [1, 0, 1, 0, 0.5, 0], "v": False}})
        assert encoded == "2F1,0,1,0,0.5,0V0"

    def test_tint_string(self):
        assert encode_keyframes({0: {"t": "#0000ff"}}) == "0T255"

    def test_decodes_back(self):
        keyframes = {0: {"x": 12.5, "r": -90}, 6: {"a": 0.5, "v": True}}
        assert decode_keyframes(encode_keyframes(keyframes)) == keyframes

    def test_unknown_property(self):
        with pytest.raises(KeyframeDecodeError, match="no keyframe code"):
            encode_keyframes({0: {"z": 1}})
