from hypothesis import given, settings, strategies as st, HealthCheck

from hilift.core.common import RenderConfig
from hilift.core.coordinate_lifter import (clip_original_bounds, lift_bin,
                                           lift_genomic_interval,
                                           lift_interval, lift_position,
                                           lower_interval, lower_position,
                                           scaled, to_current, to_original,
                                           unscaled)
from hilift.core.scaffold_map import ScaffoldMap, ScaffoldSegment


def three_segment_map() -> ScaffoldMap:
    return ScaffoldMap(300, [
        ScaffoldSegment.make_scaffold_segment(0, 'A', 0, 100, 0),
        ScaffoldSegment.make_scaffold_segment(1, 'B', 100, 200, 200, inverted=True),
        ScaffoldSegment.make_scaffold_segment(2, 'C', 200, 300, 100),
    ])


def test_worked_example():
    m = three_segment_map()
    b = m.segment_at_original(150)
    assert b.name == 'B'
    assert to_current(b, 150) == 250
    assert m.segment_at_current(250) == b
    assert to_original(b, 250) == 150


@settings(
    max_examples=500,
    deadline=30000,
    derandomize=True,
    suppress_health_check=(
        HealthCheck.filter_too_much,
    )
)
@given(
    original_start=st.integers(min_value=0, max_value=10**9),
    length=st.integers(min_value=1, max_value=10**7),
    current_start=st.integers(min_value=0, max_value=10**9),
    inverted=st.booleans(),
    offset_fraction=st.floats(min_value=0.0, max_value=1.0, exclude_max=True),
)
def test_round_trip(original_start, length, current_start, inverted, offset_fraction):
    segment = ScaffoldSegment.make_scaffold_segment(
        0, 'segment', original_start, original_start + length, current_start, inverted=inverted)
    p = original_start + int(offset_fraction * length)
    lifted = to_current(segment, p)
    assert segment.current_start <= lifted <= segment.current_end, "Lifted position should stay inside segment"
    assert to_original(segment, lifted) == p, "Lifting back and forth should be identity"


@settings(max_examples=300, deadline=30000, derandomize=True)
@given(
    length=st.integers(min_value=2, max_value=10**6),
    inverted=st.booleans(),
    a=st.floats(min_value=0.0, max_value=1.0),
    b=st.floats(min_value=0.0, max_value=1.0),
)
def test_interval_is_low_to_high(length, inverted, a, b):
    segment = ScaffoldSegment.make_scaffold_segment(0, 's', 1000, 1000 + length, 5000, inverted=inverted)
    start, end = sorted((1000 + int(a * length), 1000 + int(b * length)))
    lifted_start, lifted_end = lift_interval(segment, start, end)
    assert lifted_start <= lifted_end
    assert lifted_end - lifted_start == end - start
    assert lower_interval(segment, lifted_start, lifted_end) == (start, end)


def test_scaling_is_symmetric():
    config = RenderConfig(hic_map_scale=2.5)
    assert unscaled(scaled(1234, config), config) == 1234
    segment = ScaffoldSegment.make_scaffold_segment(0, 's', 0, 1000, 2000, inverted=True)
    assert lower_position(segment, lift_position(segment, 100, config), config) == 100


def test_clip_forward_segment():
    config = RenderConfig()
    segment = ScaffoldSegment.make_scaffold_segment(0, 's', 1000, 2000, 0)
    assert clip_original_bounds(segment, 0, 5000, config) == (1000, 2000)
    assert clip_original_bounds(segment, 100, 5000, config) == (1100, 2000)
    assert clip_original_bounds(segment, 0, 400, config) == (1000, 1400)
    assert clip_original_bounds(segment, 100, 400, config) == (1100, 1400)


def test_clip_inverted_segment_moves_opposite_bounds():
    config = RenderConfig()
    segment = ScaffoldSegment.make_scaffold_segment(0, 's', 1000, 2000, 0, inverted=True)
    # Left view edge cuts the right original end
    assert clip_original_bounds(segment, 100, 5000, config) == (1000, 1900)
    # Right view edge cuts the left original end
    assert clip_original_bounds(segment, 0, 400, config) == (1600, 2000)
    x1, x2 = clip_original_bounds(segment, 100, 400, config)
    assert (x1, x2) == (1600, 1900)
    assert lift_interval(segment, x1, x2) == (100, 400)


def test_clip_with_display_scale():
    config = RenderConfig(hic_map_scale=10.0)
    segment = ScaffoldSegment.make_scaffold_segment(0, 's', 0, 1000, 0)
    assert clip_original_bounds(segment, 200, 600, config) == (20, 60)


def test_lift_genomic_interval_keeps_length():
    config = RenderConfig()
    forward = ScaffoldSegment.make_scaffold_segment(0, 'f', 100, 200, 500)
    inverted = ScaffoldSegment.make_scaffold_segment(1, 'i', 100, 200, 500, inverted=True)
    assert lift_genomic_interval(forward, 110, 130, config) == (510, 530)
    assert lift_genomic_interval(inverted, 110, 130, config) == (570, 590)


def test_lift_bin():
    config = RenderConfig()
    forward = ScaffoldSegment.make_scaffold_segment(0, 'f', 0, 100, 100)
    inverted = ScaffoldSegment.make_scaffold_segment(1, 'i', 0, 100, 100, inverted=True)
    assert lift_bin(forward, 3, 10, config) == 13
    # Bin [30, 40) goes to [160, 170)
    assert lift_bin(inverted, 3, 10, config) == 16
