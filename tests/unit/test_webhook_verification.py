import pytest

from processor.briqpay import webhook_verification as wv

SECRET = "whsec_test"
BODY = '{"event":"order_status","status":"order_pending","sessionId":"bq-1"}'
NOW = 1_700_000_000_000


def _header(body: str = BODY, secret: str = SECRET, ts: int = NOW) -> str:
    return f"t={ts},s1={wv.compute_signature(body, secret, ts)}"


@pytest.fixture
def cache():
    return wv.ReplayCache()


def test_signature_round_trip(cache):
    result = wv.verify(BODY, _header(), SECRET, cache=cache, now_ms=NOW)
    assert result.is_valid
    assert result.error is None


def test_tampered_body_is_rejected(cache):
    tampered = BODY.replace("order_pending", "order_pendinG")
    result = wv.verify(tampered, _header(), SECRET, cache=cache, now_ms=NOW)
    assert not result.is_valid
    assert result.error == "Signature validation failed"


def test_wrong_secret_is_rejected(cache):
    result = wv.verify(BODY, _header(secret="whsec_tesT"), SECRET, cache=cache, now_ms=NOW)
    assert result.error == "Signature validation failed"


def test_replay_is_rejected_the_second_time(cache):
    header = _header()
    assert wv.verify(BODY, header, SECRET, cache=cache, now_ms=NOW).is_valid
    second = wv.verify(BODY, header, SECRET, cache=cache, now_ms=NOW + 10)
    assert not second.is_valid
    assert second.error == "Replay detected"


def test_timestamp_exactly_at_tolerance_is_accepted(cache):
    ts = NOW - wv.DEFAULT_TOLERANCE_MS
    assert wv.verify(BODY, _header(ts=ts), SECRET, cache=cache, now_ms=NOW).is_valid


def test_timestamp_one_ms_too_old_is_rejected(cache):
    ts = NOW - wv.DEFAULT_TOLERANCE_MS - 1
    result = wv.verify(BODY, _header(ts=ts), SECRET, cache=cache, now_ms=NOW)
    assert result.error == "Timestamp validation failed - webhook too old"


def test_timestamp_from_the_future_is_rejected(cache):
    ts = NOW + 60_001
    result = wv.verify(BODY, _header(ts=ts), SECRET, cache=cache, now_ms=NOW)
    assert result.error == "Timestamp validation failed - webhook from the future"


@pytest.mark.parametrize("header", ["", "s1=abc,t=1", "t=123", "t=,s1=abc"])
def test_malformed_header(cache, header):
    assert wv.verify(BODY, header, SECRET, cache=cache, now_ms=NOW).error == "Invalid signature header format"


def test_non_numeric_timestamp(cache):
    assert wv.verify(BODY, "t=12a,s1=abc", SECRET, cache=cache, now_ms=NOW).error == "Invalid timestamp"


def test_replay_cache_is_bounded_fifo():
    cache = wv.ReplayCache()
    for i in range(wv.MAX_REPLAY_ENTRIES + 1):
        cache.add(f"key-{i}", NOW)
    assert len(cache) == wv.MAX_REPLAY_ENTRIES
    assert "key-0" not in cache
    assert "key-1" in cache
    assert f"key-{wv.MAX_REPLAY_ENTRIES}" in cache


def test_verify_keeps_at_most_max_entries(cache):
    limit = wv.MAX_REPLAY_ENTRIES
    headers = []
    for i in range(limit + 1):
        ts = NOW - limit + i
        body = f'{{"event":"order_status","status":"order_pending","sessionId":"bq-{i}"}}'
        header = _header(body=body, ts=ts)
        assert wv.verify(body, header, SECRET, cache=cache, now_ms=NOW).is_valid
        headers.append((body, header, ts))

    assert len(cache) == limit
    first_body, first_header, first_ts = headers[0]
    assert wv.replay_key(str(first_ts), first_header.split(",s1=", 1)[1]) not in cache

    last_body, last_header, _ = headers[-1]
    assert wv.verify(last_body, last_header, SECRET, cache=cache, now_ms=NOW).error == "Replay detected"
    # la plus ancienne a été évincée: elle redevient acceptable
    assert wv.verify(first_body, first_header, SECRET, cache=cache, now_ms=NOW).is_valid
    assert len(cache) == limit


def test_replay_cache_purges_expired_entries():
    cache = wv.ReplayCache()
    cache.add("old", NOW - wv.DEFAULT_TOLERANCE_MS - 1)
    cache.add("fresh", NOW)
    cache.purge(NOW, wv.DEFAULT_TOLERANCE_MS)
    assert "old" not in cache
    assert "fresh" in cache


def test_module_cache_is_used_by_default():
    assert wv.verify(BODY, _header(), SECRET, now_ms=NOW).is_valid
    assert len(wv.replay_cache) == 1
    wv.replay_cache.clear()
    assert len(wv.replay_cache) == 0


def test_verification_enabled_only_with_secret(monkeypatch):
    from processor import config

    monkeypatch.setattr(config, "BRIQPAY_WEBHOOK_SECRET", "")
    assert not wv.is_hmac_verification_enabled()
    monkeypatch.setattr(config, "BRIQPAY_WEBHOOK_SECRET", SECRET)
    assert wv.is_hmac_verification_enabled()


@pytest.mark.parametrize(
    "header,now,error",
    [
        ("t=123", NOW, "Invalid signature header format"),
        ("t=12a,s1=abc", NOW, "Invalid timestamp"),
        (_header(ts=NOW - wv.DEFAULT_TOLERANCE_MS - 1), NOW, "Timestamp validation failed - webhook too old"),
        (_header(ts=NOW + 60_001), NOW, "Timestamp validation failed - webhook from the future"),
        (_header(secret="whsec_other"), NOW, "Signature validation failed"),
    ],
)
def test_each_rejection_is_logged(cache, caplog, header, now, error):
    with caplog.at_level("WARNING", logger="processor.briqpay.webhook_verification"):
        result = wv.verify(BODY, header, SECRET, cache=cache, now_ms=now)
    assert result.error == error
    assert any(error in record.getMessage() for record in caplog.records)
