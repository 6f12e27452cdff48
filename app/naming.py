import re

DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9_-]")
PLACEHOLDER_SEGMENT = "anonymous"


def sanitize_guest_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with ``_``."""
    return DISALLOWED_CHARS.sub("_", name)


def guest_folder(base_folder: str, guest_name: str | None, placeholder: str | None = None) -> str:
    segment = sanitize_guest_name((guest_name or "").strip())
    if not segment and placeholder:
        segment = placeholder
    return f"{base_folder}/{segment}"
