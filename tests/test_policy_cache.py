import threading

from signalgate.core.policy import DEFAULT_POLICY_CACHE, PolicyCache, compile_policy, get_or_compile


def test_same_object_returns_same_compiled_instance() -> None:
    raw = {"weights": {"balance": 2.0}}
    first = get_or_compile(raw)
    second = get_or_compile(raw)
    assert first is second
    assert raw in DEFAULT_POLICY_CACHE


def test_equal_but_distinct_objects_compile_independently() -> None:
    left = {"weights": {"balance": 2.0}}
    right = {"weights": {"balance": 2.0}}
    first = get_or_compile(left)
    second = get_or_compile(right)
    assert first is not second
    assert first == second
    assert len(DEFAULT_POLICY_CACHE) == 2


def test_compiler_runs_once_per_object() -> None:
    calls = []

    def compiler(raw):
        calls.append(raw)
        return compile_policy(raw)

    cache = PolicyCache(compiler)
    raw = {}
    cache.get_or_compile(raw)
    cache.get_or_compile(raw)
    assert len(calls) == 1


def test_eviction_drops_oldest_entries() -> None:
    cache = PolicyCache(compile_policy, max_entries=2)
    first, second, third = {}, {}, {}
    cache.get_or_compile(first)
    cache.get_or_compile(second)
    cache.get_or_compile(third)
    assert len(cache) == 2
    assert first not in cache
    assert third in cache


def test_recently_used_entry_survives_eviction() -> None:
    cache = PolicyCache(compile_policy, max_entries=2)
    hot, second, third = {}, {}, {}
    compiled = cache.get_or_compile(hot)
    cache.get_or_compile(second)
    assert cache.get_or_compile(hot) is compiled
    cache.get_or_compile(third)
    assert hot in cache
    assert second not in cache
    assert cache.get_or_compile(hot) is compiled


def test_clear_empties_cache() -> None:
    cache = PolicyCache(compile_policy)
    raw = {}
    cache.get_or_compile(raw)
    cache.clear()
    assert cache.peek(raw) is None
    assert len(cache) == 0


def test_concurrent_access_yields_single_instance() -> None:
    cache = PolicyCache(compile_policy)
    raw = {"tie_break_order": ["A", "B"]}
    results = []
    lock = threading.Lock()

    def worker() -> None:
        policy = cache.get_or_compile(raw)
        with lock:
            results.append(policy)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 16
    assert all(item is results[0] for item in results)
    assert cache.get_or_compile(raw) is results[0]
