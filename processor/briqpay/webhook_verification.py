"""
Vérification des webhooks Briqpay (en-tête x-briq-signature: "t=<ms>,s1=<base64>").
- Authenticité: HMAC-SHA256(secret, "<t>.<raw_body>") encodé en base64, comparé en temps constant.
- Fraîcheur: rejet si plus vieux que tolerance_ms, ou daté de plus d'une minute dans le futur.
- Rejeu: cache borné (FIFO, 5000 entrées) des signatures déjà vues dans la fenêtre de tolérance.
La vérification n'est active que si BRIQPAY_WEBHOOK_SECRET est configuré.
"""
import base64
import hashlib
import hmac
import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-briq-signature"
DEFAULT_TOLERANCE_MS = 5 * 60 * 1000
FUTURE_SKEW_MS = 60 * 1000
MAX_REPLAY_ENTRIES = 5000
_DIGITS = re.compile(r"[0-9]+")

INVALID_HEADER = "Invalid signature header format"
INVALID_TIMESTAMP = "Invalid timestamp"
TOO_OLD = "Timestamp validation failed - webhook too old"
FROM_FUTURE = "Timestamp validation failed - webhook from the future"
BAD_SIGNATURE = "Signature validation failed"
REPLAY = "Replay detected"


@dataclass
class VerificationResult:
    is_valid: bool
    error: Optional[str] = None


class ReplayCache:
    """Clé de rejeu -> timestamp (ms), ordonné par insertion; l'entrée la plus ancienne sort en premier."""

    def __init__(self, max_entries: int = MAX_REPLAY_ENTRIES):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, int]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def seen(self, key: str) -> bool:
        return key in self._entries

    def purge(self, now_ms: int, tolerance_ms: int) -> None:
        expired = [k for k, seen_at in self._entries.items() if now_ms - seen_at > tolerance_ms]
        for k in expired:
            del self._entries[k]

    def add(self, key: str, seen_at_ms: int) -> None:
        self._entries[key] = seen_at_ms
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


replay_cache = ReplayCache()


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_signature_header(header: str) -> Optional[Tuple[str, str]]:
    parts = (header or "").split(",")
    if len(parts) < 2 or not parts[0].startswith("t=") or not parts[1].startswith("s1="):
        return None
    timestamp = parts[0][2:]
    # conserve le padding base64 ("=") en fin de signature
    signature = parts[1][3:]
    if not timestamp or not signature:
        return None
    return timestamp, signature


def compute_signature(raw_body: str, secret: str, timestamp) -> str:
    payload = f"{timestamp}.{raw_body}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def replay_key(timestamp: str, signature: str) -> str:
    return hashlib.sha256(f"{timestamp}.{signature}".encode("utf-8")).hexdigest()


def verify(
    raw_body: str,
    signature_header: str,
    secret: str,
    tolerance_ms: int = DEFAULT_TOLERANCE_MS,
    cache: Optional[ReplayCache] = None,
    now_ms: Optional[int] = None,
) -> VerificationResult:
    """
    Vérifie un webhook signé.
    - raw_body: corps brut tel que reçu (avant tout parsing JSON)
    - cache: ReplayCache injecté (par défaut le cache du process)
    - now_ms: horloge injectable pour les tests
    Retour: VerificationResult(is_valid, error) avec un message d'erreur stable.
    """
    cache = replay_cache if cache is None else cache
    parsed = parse_signature_header(signature_header)
    if parsed is None:
        logger.warning("webhook rejected: %s", INVALID_HEADER)
        return VerificationResult(False, INVALID_HEADER)
    timestamp, signature = parsed

    if not _DIGITS.fullmatch(timestamp):
        logger.warning("webhook rejected: %s t=%r", INVALID_TIMESTAMP, timestamp)
        return VerificationResult(False, INVALID_TIMESTAMP)
    ts = int(timestamp)

    now = _now_ms() if now_ms is None else now_ms
    if now - ts > tolerance_ms:
        logger.warning("webhook rejected: %s age_ms=%s", TOO_OLD, now - ts)
        return VerificationResult(False, TOO_OLD)
    if ts - now > FUTURE_SKEW_MS:
        logger.warning("webhook rejected: %s skew_ms=%s", FROM_FUTURE, ts - now)
        return VerificationResult(False, FROM_FUTURE)

    expected = compute_signature(raw_body, secret, timestamp).encode("utf-8")
    received = signature.encode("utf-8")
    if len(received) != len(expected) or not hmac.compare_digest(received, expected):
        logger.warning("webhook rejected: %s", BAD_SIGNATURE)
        return VerificationResult(False, BAD_SIGNATURE)

    key = replay_key(timestamp, signature)
    cache.purge(now, tolerance_ms)
    if cache.seen(key):
        logger.warning("webhook replay detected ts=%s", timestamp)
        return VerificationResult(False, REPLAY)
    cache.add(key, ts)
    return VerificationResult(True)


def get_webhook_secret() -> str:
    from processor import config
    return config.BRIQPAY_WEBHOOK_SECRET


def is_hmac_verification_enabled() -> bool:
    return bool(get_webhook_secret())
