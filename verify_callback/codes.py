"""
One-time session code generation. 32 random bytes, hex-encoded (64 chars, 256 bits).
"""
import secrets

SESSION_CODE_BYTES = 32
SESSION_CODE_LENGTH = SESSION_CODE_BYTES * 2


def generate_session_code() -> str:
    """Unguessable claim check for a token bundle; never a display ID."""
    return secrets.token_hex(SESSION_CODE_BYTES)


def is_well_formed_code(value) -> bool:
    """Only the length is checked, so a bad code is rejected before any store lookup."""
    return isinstance(value, str) and len(value) == SESSION_CODE_LENGTH


def code_preview(value: str | None) -> str:
    """Short prefix for logs; codes and token hashes are never logged in full."""
    if not value:
        return "missing"
    return f"{value[:8]}..."
