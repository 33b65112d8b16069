from __future__ import annotations

import os


def safe_member_path(name: str) -> str:
    """Map an entry name to a relative, forward-slash path safe to join onto an
    output directory.

    Rules:
    - Backslashes count as separators
    - Drive letters and leading slashes are rejected
    - Empty and '.' segments are dropped
    - '..' segments are rejected
    """
    p = name.replace("\\", "/")
    if p.startswith("/") or (len(p) >= 2 and p[1] == ":"):
        raise ValueError(f"Absolute entry path not allowed: {name!r}")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError(f"Entry path may not contain '..': {name!r}")
    return "/".join(parts)


def destination(outdir: str, name: str) -> str:
    rel = safe_member_path(name)
    return os.path.join(outdir, *rel.split("/")) if rel else outdir
