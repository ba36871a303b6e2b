"""
Correspondance d'origines CORS avec joker.
- matches(pattern, origin): égalité exacte, ou motif "scheme://*.domaine" où * vaut exactement un label DNS.
- is_origin_allowed(origin, patterns): règle appliquée par le middleware CORS.
"""
import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

# module processor.utils.origin
_LABEL = r"[a-zA-Z0-9]([a-zA-Z0-9\-]*[a-zA-Z0-9])?"
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _host(scheme: str, netloc: str, port: Optional[int]) -> str:
    # comme URL.host: le port par défaut du schéma n'en fait pas partie
    if port is not None and _DEFAULT_PORTS.get(scheme) == port:
        return netloc.rsplit(":", 1)[0]
    return netloc


def matches(pattern: str, origin: str) -> bool:
    if pattern == origin:
        return True
    if "*" not in pattern:
        return False

    try:
        parts = urlsplit(origin)
        host = _host(parts.scheme, parts.netloc, parts.port)
    except ValueError:
        return False
    if not parts.scheme or not host:
        return False

    sep = pattern.find("://")
    if sep < 0:
        return False
    scheme = pattern[: sep + 3]
    if not origin.startswith(scheme):
        return False

    host_pattern = pattern[sep + 3:]
    if "*" in scheme or "/" in host_pattern:
        return False
    regex = "^" + re.escape(host_pattern).replace(r"\*", _LABEL) + "$"
    return re.match(regex, host) is not None


def is_origin_allowed(origin: Optional[str], patterns: Iterable[str]) -> bool:
    """
    - Pas d'en-tête Origin (appel serveur à serveur): autorisé.
    - Liste vide: toute origine navigateur est refusée.
    """
    if not origin:
        return True
    patterns = list(patterns or [])
    if not patterns:
        return False
    return any(matches(p, origin) for p in patterns)
