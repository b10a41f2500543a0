"""Storage key derivation and content-type normalization."""
import re
import secrets
import time

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9.\-]")


def sanitize_filename(name: str) -> str:
    """Replace every character outside [A-Za-z0-9.-] with an underscore."""
    return _UNSAFE_NAME_CHARS.sub("_", name)


def build_storage_key(prefix: str, original_name: str) -> str:
    """Build ``{prefix}_{unixMillis}{salt}_{sanitizedName}``.

    The six salt digits keep keys from two uploads of the same name in the
    same millisecond apart without any coordination between callers.
    """
    millis = int(time.time() * 1000)
    salt = secrets.randbelow(1_000_000)
    return f"{prefix}_{millis}{salt:06d}_{sanitize_filename(original_name)}"


def normalize_content_type(content_type: str | None) -> str:
    """Lowercase the MIME type and drop parameters such as charset."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()
