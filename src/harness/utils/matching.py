"""Text and structure comparisons shared by observers and clients."""

from typing import Any, Iterable, Mapping, Optional


def lines_contain(
    lines: Iterable[str], positive: str, negative: Optional[str] = None
) -> bool:
    """True iff some line contains ``positive`` and none contains ``negative``."""
    found = False
    for line in lines:
        if negative and negative in line:
            return False
        if positive in line:
            found = True
    return found


def subset_mismatches(
    requested: Mapping[str, Any],
    observed: Mapping[str, Any],
    fields: Optional[Iterable[str]] = None,
) -> dict[str, tuple[Any, Any]]:
    """Fields whose observed value differs from the requested one.

    Only ``fields`` are compared (all requested keys when None). A field
    missing from ``observed`` counts as a mismatch with observed ``None``.

    Returns:
        Mapping of field name to (requested, observed)
    """
    keys = list(requested.keys()) if fields is None else list(fields)
    mismatches = {}
    for key in keys:
        want = requested.get(key)
        got = observed.get(key)
        if want != got:
            mismatches[key] = (want, got)
    return mismatches
