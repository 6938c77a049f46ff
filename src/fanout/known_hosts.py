"""Read candidate host names from an OpenSSH known_hosts file."""

from __future__ import annotations

from pathlib import Path


def read_known_hosts(path: str | Path) -> list[str]:
    """Return the host names listed in ``path``, in file order.

    Only names a connection can be made to are returned: hashed entries,
    wildcard and negated patterns, and ``@cert-authority`` / ``@revoked``
    lines are skipped.
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"known_hosts file not found: {path}")

    names: list[str] = []
    with open(path) as f:
        for line in f:
            fields = line.split()
            if not fields or fields[0].startswith(("#", "@")):
                continue
            for name in fields[0].split(","):
                name = _strip_port(name)
                if _is_host_name(name):
                    names.append(name)
    return names


def _is_host_name(name: str) -> bool:
    if not name or name.startswith(("|", "!")):
        return False
    return "*" not in name and "?" not in name


def _strip_port(name: str) -> str:
    """Turn the ``[host]:port`` form into ``host``."""
    if name.startswith("[") and "]" in name:
        return name[1 : name.index("]")]
    return name
