import numpy as np

from rng import SimRandom


def test_same_seed_same_stream():
    a, b = SimRandom(11), SimRandom(11)
    assert np.array_equal(a.random(10), b.random(10))
    assert a.integers(0, 100) == b.integers(0, 100)
    assert a.gaussian() == b.gaussian()


def test_gaussian_returns_cached_spare_second():
    g = SimRandom(1)
    first, second = g.gaussian(), g.gaussian()

    ref = np.random.default_rng(1)
    u = 1.0 - ref.random(1)[0]
    v = ref.random(1)[0]
    r = np.sqrt(-2.0 * np.log(u))
    assert np.isclose(first,  r * np.cos(2 * np.pi * v))
    assert np.isclose(second, r * np.sin(2 * np.pi * v))


def test_spare_is_not_regenerated():
    g = SimRandom(2)
    g.gaussian()
    state_before = g._gen.bit_generator.state
    g.gaussian()                    # served from the cache
    assert g._gen.bit_generator.state == state_before


def test_gaussian_array_caches_odd_leftover():
    even, odd = SimRandom(5), SimRandom(5)
    four = even.gaussian_array(4)
    three = odd.gaussian_array(3)
    assert np.allclose(four[:3], three)
    assert np.isclose(odd.gaussian(), four[3])


def test_gaussian_array_uses_pending_spare_first():
    g = SimRandom(8)
    g.gaussian()
    spare = g._spare
    values = g.gaussian_array((2, 2))
    assert values.shape == (2, 2)
    assert values.ravel()[0] == spare


def test_gaussian_array_is_standard_normal():
    values = SimRandom(3).gaussian_array(20000)
    assert abs(values.mean()) < 0.05
    assert abs(values.std() - 1.0) < 0.05


def test_integers_range():
    g = SimRandom(4)
    draws = [g.integers(0, 8) for _ in range(200)]
    assert min(draws) >= 0 and max(draws) <= 7
    assert all(isinstance(d, int) for d in draws)
