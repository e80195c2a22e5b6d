from __future__ import annotations

import re
from typing import Optional

from .errors import ValidationError

_USERNAME_RE = re.compile(r"^[A-Za-z0-9._@+\-]+$")


def clean_str(value: Optional[str], *, max_len: Optional[int] = None, field: str = "value") -> Optional[str]:
    """Trim; blank becomes None."""
    if value is None:
        return None
    trimmed = str(value).strip()
    if not trimmed:
        return None
    if max_len is not None and len(trimmed) > max_len:
        raise ValidationError(f"{field} too long (max {max_len})")
    return trimmed


def require_str(value: Optional[str], *, max_len: Optional[int] = None, field: str = "value") -> str:
    cleaned = clean_str(value, max_len=max_len, field=field)
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


def normalize_email(s: str) -> str:
    s = (s or "").strip().lower()
    if "@" not in s or s.startswith("@") or s.endswith("@") or len(s) > 254:
        raise ValidationError("Invalid email")
    return s


def normalize_username(s: str) -> str:
    s = (s or "").strip()
    if len(s) < 3 or len(s) > 50:
        raise ValidationError("Username must be between 3 and 50 characters")
    if not _USERNAME_RE.match(s):
        raise ValidationError("Username contains invalid characters")
    return s


def normalize_phone(s: str) -> str:
    s = (s or "").strip()
    if not s:
        raise ValidationError("Invalid phone")
    s2 = re.sub(r"[\s\-\(\)\.]", "", s)
    if s2.startswith("+"):
        digits = re.sub(r"\D", "", s2[1:])
        if not digits:
            raise ValidationError("Invalid phone")
        out = "+" + digits
    else:
        digits = re.sub(r"\D", "", s2)
        if len(digits) == 10:
            out = "+1" + digits
        elif len(digits) == 11 and digits.startswith("1"):
            out = "+" + digits
        else:
            raise ValidationError("Invalid phone format; use +E164 or 10-digit")
    if len(out) > 20:
        raise ValidationError("phone too long (max 20)")
    return out


def normalize_choice(value: str, allowed: frozenset[str], *, field: str) -> str:
    upper = value.strip().upper()
    if upper not in allowed:
        raise ValidationError(f"Invalid {field}; expected one of {', '.join(sorted(allowed))}")
    return upper
