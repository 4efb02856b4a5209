from trust_guard.shared.clock import ManualClock
from trust_guard.trust import UAVerdict, UserAgentClassifier, UserAgentReputationCache
from trust_guard.trust.ua_reputation import BAD, CLEAN, CLEAN_VERDICT, SUSPICIOUS, cache_key


def _classifier():
    return UserAgentClassifier(
        ["sqlmap", "curl"],
        ["Java/"],
        bad_penalty=-100,
        suspicious_penalty=-30,
    )


def test_classify():
    classifier = _classifier()
    assert classifier.classify("curl/7.88") == UAVerdict(BAD, -100, "curl")
    assert classifier.classify("java/1.8.0_292") == UAVerdict(SUSPICIOUS, -30, "Java/")
    assert classifier.classify("Mozilla/5.0") == CLEAN_VERDICT
    assert classifier.classify("").category == CLEAN


def test_empty_patterns_are_ignored():
    classifier = UserAgentClassifier(["", "nmap"], [""], bad_penalty=-100, suspicious_penalty=-30)
    assert classifier.classify("Mozilla/5.0") == CLEAN_VERDICT


def test_cache_invalidate_and_clear():
    clock = ManualClock(0.0)
    cache = UserAgentReputationCache(_classifier(), ttl=10, timer=clock.time)
    assert cache.lookup("curl/8").category == BAD
    assert cache.lookup("Mozilla/5.0").category == CLEAN
    assert len(cache) == 2
    cache.invalidate("curl/8")
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0


def test_cache_entries_expire():
    clock = ManualClock(0.0)
    cache = UserAgentReputationCache(_classifier(), ttl=10, timer=clock.time)
    cache.lookup("curl/8")
    clock.advance(11)
    assert len(cache) == 0


def test_cache_is_keyed_by_fixed_size_digest():
    cache = UserAgentReputationCache(_classifier())
    huge = "Mozilla/5.0 " + "x" * 1_000_000 + " curl/8"
    assert cache.lookup(huge).category == BAD
    assert cache.lookup(huge).category == BAD
    assert len(cache) == 1
    keys = [key for shard in cache._store._shards for key in shard.cache.keys()]
    assert keys == [cache_key(huge)]
    assert len(keys[0]) == 16
    cache.invalidate(huge)
    assert len(cache) == 0


def test_distinct_agents_get_distinct_keys():
    assert cache_key("curl/8") != cache_key("curl/9")
    assert cache_key("") == cache_key(None)
