import pytest

from kvsbench.rng import Rng
from kvsbench.settings import KeyDistribution, Settings
from kvsbench.workload import (
    Key,
    Operation,
    Workload,
    WorkloadCore,
    distribute_uniform,
    distribute_zipf,
    draw_key,
    generate_keys,
)


def _quarters():
    return [Key(bytes([i]), c) for i, c in enumerate([0.25, 0.5, 0.75, 1.0])]


def test_generate_keys_sizes_and_determinism():
    a = generate_keys(Rng(7), 10, 5)
    b = generate_keys(Rng(7), 10, 5)
    assert a == b
    assert len(a) == 10
    assert all(len(k) == 5 for k in a)


def test_generate_keys_matches_rng_stream():
    rng = Rng(3)
    expected = [rng.gen_bytes(6), rng.gen_bytes(6)]
    assert generate_keys(Rng(3), 2, 6) == expected


def test_uniform_cdf_monotone_and_ends_at_one():
    cdfs = distribute_uniform(10)
    assert len(cdfs) == 10
    assert cdfs == sorted(cdfs)
    assert cdfs[-1] == pytest.approx(1.0)
    assert cdfs[0] == pytest.approx(0.1)


def test_zipf_cdf_properties():
    cdfs = distribute_zipf(100, 0.99)
    assert cdfs == sorted(cdfs)
    assert cdfs[-1] == pytest.approx(1.0)
    assert cdfs[0] > cdfs[1] - cdfs[0]


def test_zipf_zero_equals_uniform():
    assert distribute_zipf(8, 0.0) == pytest.approx(distribute_uniform(8))


def test_draw_key_finds_containing_interval():
    keys = _quarters()
    assert draw_key(keys, 0.6) is keys[2]


def test_draw_key_exact_boundary():
    keys = _quarters()
    assert draw_key(keys, 0.5) is keys[1]


def test_draw_key_single_key():
    keys = [Key(b"a", 1.0)]
    assert draw_key(keys, 0.3) is keys[0]


def test_draw_key_always_returns_member():
    keys = _quarters()
    for i in range(101):
        assert draw_key(keys, i / 100) in keys


def test_draw_key_empty_raises():
    with pytest.raises(ValueError):
        draw_key([], 0.5)


def test_workload_builds_keys_from_settings():
    s = Settings(keynum=50, keysize=8)
    wl = Workload(s)
    assert len(wl.keys) == 50
    assert all(len(k.key) == 8 for k in wl.keys)
    assert wl.keys[-1].cdf == pytest.approx(1.0)
    assert [k.key for k in wl.keys] == generate_keys(Rng(s.key_seed), 50, 8)


def test_workload_zipf_distribution_used():
    s = Settings(keynum=20, keydist=KeyDistribution.ZIPF, zipf_s=1.0)
    wl = Workload(s)
    assert [k.cdf for k in wl.keys] == pytest.approx(distribute_zipf(20, 1.0))


def test_cores_are_deterministic_and_distinct():
    s = Settings(keynum=30)
    ops_a = [Workload(s).core().next_op() for _ in range(1)]
    ops_b = [Workload(s).core().next_op() for _ in range(1)]
    assert ops_a[0][0].key == ops_b[0][0].key
    wl = Workload(s)
    c1, c2 = wl.core(), wl.core()
    assert c1.rng.seed != c2.rng.seed


def test_next_op_respects_get_probability():
    wl = Workload(Settings(keynum=10, get_prob=1.0))
    core = wl.core()
    results = [core.next_op() for _ in range(50)]
    assert all(op is Operation.GET for _, op in results)
    assert all(k in wl.keys for k, _ in results)


def test_next_op_all_sets_when_probability_zero():
    wl = Workload(Settings(keynum=10, get_prob=0.0))
    core = WorkloadCore(wl, 12345)
    assert all(core.next_op()[1] is Operation.SET for _ in range(50))