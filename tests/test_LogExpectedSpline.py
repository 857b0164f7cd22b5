import numpy as np
import pytest
from hypothesis import given, settings, strategies as st, HealthCheck

from hilift.core.common import (Chromosome, ExpectedValueUnavailableError,
                                HiCUnit, HiCZoom, make_contact_records)
from hilift.core.contact_store import InMemoryMatrixZoomData
from hilift.core.expected_spline import (ExpectedValueCache, LogExpectedSpline,
                                         group_boundaries)

CHR1 = Chromosome(1, 'chr1', 10000)
ZOOM = HiCZoom(HiCUnit.BP, 10)


def decaying_records(max_distance: int = 1000) -> np.ndarray:
    distances = np.arange(max_distance)
    return make_contact_records(np.zeros_like(distances), distances, 1000.0 / (distances + 1))


def test_group_boundaries():
    assert group_boundaries(35) == list(range(11)) + [15, 20, 25, 30, 35]
    assert group_boundaries(37) == group_boundaries(35)
    assert group_boundaries(0) == [0]


def test_flat_decay_gives_flat_curve():
    distances = np.arange(1000)
    records = make_contact_records(np.zeros_like(distances), distances, np.ones_like(distances))
    spline = LogExpectedSpline.fit([records], 1000)
    for d in (0, 1, 10, 123, 500, 999, 10**6):
        assert spline.expected(d) == pytest.approx(1.0, rel=1e-6)


def test_distances_are_clamped():
    spline = LogExpectedSpline.fit([decaying_records()], 1000)
    assert spline.max_log_distance == pytest.approx(np.log1p(999))
    assert spline(10**9) == spline(999)
    assert spline(-5) == spline(0)
    values = spline(np.array([0, 10, 10**9]))
    assert isinstance(values, np.ndarray)
    assert values[2] == pytest.approx(spline(999))


def test_decay_is_followed():
    spline = LogExpectedSpline.fit([decaying_records()], 1000)
    assert spline(1) > spline(100) > spline(900)
    assert isinstance(spline(3), float)


def test_chunks_accumulate_like_one_array():
    records = decaying_records()
    whole = LogExpectedSpline.fit([records], 1000)
    chunked = LogExpectedSpline.fit([records[:300], records[:0], records[300:]], 1000)
    for d in (0, 5, 50, 500):
        assert chunked(d) == pytest.approx(whole(d))


@pytest.mark.parametrize(
    "records",
    [
        make_contact_records([], [], []),
        make_contact_records([3, 5], [3, 5], [10.0, 2.0]),
    ]
)
def test_too_few_points(records):
    with pytest.raises(ExpectedValueUnavailableError):
        LogExpectedSpline.fit([records], 1000)


def test_build_from_source_and_cache():
    zd = InMemoryMatrixZoomData(CHR1, CHR1, ZOOM, decaying_records(), block_bin_count=64)
    cache = ExpectedValueCache()
    spline = cache.get_or_build(zd, CHR1, ZOOM.bin_size, 'none')
    assert cache.get_or_build(zd, CHR1, ZOOM.bin_size, 'none') is spline
    assert (CHR1.index, ZOOM.bin_size, 'none') in cache
    assert cache.get(CHR1.index, ZOOM.bin_size, 'none') is spline
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0


@settings(
    max_examples=100,
    deadline=30000,
    derandomize=True,
    report_multiple_bugs=False,
    suppress_health_check=(
        HealthCheck.filter_too_much,
        HealthCheck.data_too_large
    )
)
@given(
    counts=st.lists(st.floats(min_value=0.0, max_value=1e6), min_size=2, max_size=500),
    queries=st.lists(st.floats(min_value=-1e3, max_value=1e12), min_size=1, max_size=20),
)
def test_expected_is_finite_and_clamped(counts, queries):
    distances = np.arange(len(counts))
    records = make_contact_records(np.zeros_like(distances), distances, counts)
    spline = LogExpectedSpline.fit([records], len(counts))
    last = spline(len(counts) - 1)
    for d in queries:
        value = spline(d)
        assert np.isfinite(value)
        if d >= len(counts) - 1:
            assert value == pytest.approx(last)
