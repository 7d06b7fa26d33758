import random

from opinionmap.analysis.rng import XorShift32, make_rng


def test_xorshift_known_first_value():
    rng = XorShift32(1)
    assert rng.next_uint32() == 270369


def test_same_seed_same_stream():
    a = XorShift32(42)
    b = XorShift32(42)
    assert [a.random() for _ in range(5)] == [b.random() for _ in range(5)]


def test_different_seeds_differ():
    assert XorShift32(1).random() != XorShift32(2).random()


def test_zero_seed_does_not_get_stuck():
    rng = XorShift32(0)
    values = [rng.next_uint32() for _ in range(3)]
    assert all(v != 0 for v in values)
    assert len(set(values)) == 3


def test_random_in_unit_interval():
    rng = XorShift32(123)
    values = [rng.random() for _ in range(1000)]
    assert all(0.0 <= v < 1.0 for v in values)


def test_sample_is_reproducible():
    population = list(range(100))
    assert XorShift32(7).sample(population, 10) == XorShift32(7).sample(population, 10)


def test_state_round_trip():
    rng = XorShift32(99)
    rng.random()
    state = rng.getstate()
    expected = [rng.random() for _ in range(3)]
    rng.setstate(state)
    assert [rng.random() for _ in range(3)] == expected


def test_make_rng():
    assert isinstance(make_rng(5), XorShift32)
    unseeded = make_rng()
    assert isinstance(unseeded, random.Random)
    assert not isinstance(unseeded, XorShift32)
