"""Tests for storyloop.lib.signature module."""

import pytest

from storyloop.lib.signature import (
    MAX_SIGNATURE_LENGTH,
    NORMALIZERS,
    default,
    exact,
    get_normalizer,
    register_normalizer,
    strip_locations,
    trailing_repeats,
)


class TestNormalizers:

    def test_exact_only_strips(self):
        assert exact("  Error: X  \n") == "Error: X"

    def test_default_ignores_noise(self):
        a = "\x1b[31mError\x1b[0m at 2026-03-01T10:00:00Z: ptr 0xdeadbeef after 120ms"
        b = "Error at 2026-03-02 11:30:45: ptr 0x1234   after 3.5s"
        assert default(a) == default(b)

    def test_default_keeps_distinct_errors_distinct(self):
        assert default("TS2322: type mismatch") != default("TS2345: argument mismatch")

    def test_default_truncates(self):
        assert len(default("x" * 2000)) == MAX_SIGNATURE_LENGTH

    def test_strip_locations(self):
        a = "src/user.ts:12:5 - error TS2322"
        b = "src/user.ts:40:1 - error TS2322"
        assert default(a) != default(b)
        assert strip_locations(a) == strip_locations(b)

    def test_strip_locations_python_traceback(self):
        a = 'File "app.py", line 12, in main\nKeyError: x'
        b = 'File "app.py", line 99, in main\nKeyError: x'
        assert strip_locations(a) == strip_locations(b)

    def test_strip_locations_keeps_timestamps_out(self):
        assert "<ts>" in strip_locations("failed at 2026-03-01T10:00:00")


class TestRegistry:

    def test_lookup(self):
        assert get_normalizer("exact") is exact

    def test_unknown_name(self):
        with pytest.raises(KeyError):
            get_normalizer("fuzzy")

    def test_register_custom(self):
        register_normalizer("first_line", lambda t: t.splitlines()[0] if t else "")
        try:
            assert get_normalizer("first_line")("a\nb") == "a"
        finally:
            del NORMALIZERS["first_line"]


class TestTrailingRepeats:

    @pytest.mark.parametrize("sigs,expected", [
        ([], 0),
        (["a"], 1),
        (["a", "a", "a"], 3),
        (["a", "b", "a"], 1),
        (["b", "a", "a"], 2),
    ])
    def test_counts(self, sigs, expected):
        assert trailing_repeats(sigs) == expected
