from cache import TTLCache


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_hit_within_ttl_and_refetch_after_expiry():
    clock = Clock()
    cache = TTLCache(ttl=300, clock=clock)
    fetches = []

    def fetch():
        fetches.append(clock.now)
        return {"n": len(fetches)}

    assert cache.get_or_fetch("u", fetch) == {"n": 1}
    clock.now += 299
    assert cache.get_or_fetch("u", fetch) == {"n": 1}
    clock.now += 1
    assert cache.get_or_fetch("u", fetch) == {"n": 2}
    assert len(fetches) == 2


def test_keys_are_independent():
    cache = TTLCache(ttl=10, clock=Clock())
    cache.set("a", 1)
    assert cache.get("a") == (True, 1)
    assert cache.get("b") == (False, None)


def test_failed_fetch_is_not_stored():
    cache = TTLCache(ttl=10, clock=Clock())

    def boom():
        raise RuntimeError("upstream down")

    try:
        cache.get_or_fetch("u", boom)
    except RuntimeError:
        pass
    assert len(cache) == 0
    assert cache.get_or_fetch("u", lambda: "ok") == "ok"
