"""Tests for session code generation and format checks."""
import re

from verify_callback.codes import SESSION_CODE_LENGTH, code_preview, generate_session_code, is_well_formed_code


def test_generate_session_code_is_64_hex_chars():
    code = generate_session_code()
    assert len(code) == SESSION_CODE_LENGTH == 64
    assert re.fullmatch(r"[0-9a-f]{64}", code)


def test_generate_session_code_is_random():
    assert len({generate_session_code() for _ in range(100)}) == 100


def test_is_well_formed_code():
    assert is_well_formed_code("f" * 64)
    assert not is_well_formed_code("f" * 63)
    assert not is_well_formed_code("f" * 65)
    assert not is_well_formed_code(None)
    assert not is_well_formed_code(123)


def test_code_preview_never_shows_full_value():
    code = generate_session_code()
    preview = code_preview(code)
    assert preview == f"{code[:8]}..."
    assert code not in preview
    assert code_preview(None) == "missing"
