from typing import Dict, List, Tuple

__all__ = [
    "format_bytes",
    "top_extensions",
]

_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(size: int) -> str:
    """Human readable size with binary multiples, e.g. ``1.5 MB``."""
    if size <= 0:
        return "0 B"
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(_UNITS) - 1:
        exponent += 1
    value = round(size / 1024 ** exponent, 2)
    return f"{value:g} {_UNITS[exponent]}"


def top_extensions(counts: Dict[str, int], limit: int = 10) -> List[Tuple[str, int]]:
    """Most frequent extensions first; ties break alphabetically."""
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [(ext or "(none)", n) for ext, n in ranked[:limit]]
