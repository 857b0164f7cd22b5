"""
Translation of positions, bins and intervals between original (reference) and current
(edited assembly) coordinates of a single scaffold segment.

Scaffold segments are kept in display coordinates, contact data and tracks are addressed in
storage coordinates. Every conversion between the two goes through scaled/unscaled so that the
display-vs-storage ratio is applied to both sides of any comparison.
"""
from typing import Tuple, Union

from hilift.core.common import RenderConfig
from hilift.core.scaffold_map import ScaffoldSegment

Number = Union[int, float]


def scaled(value: Number, config: RenderConfig) -> float:
    """
    Storage coordinate -> display (scaffold) coordinate.
    """
    return value * config.hic_map_scale


def unscaled(value: Number, config: RenderConfig) -> float:
    """
    Display (scaffold) coordinate -> storage coordinate.
    """
    return value / config.hic_map_scale


def to_current(segment: ScaffoldSegment, original_position: Number) -> Number:
    if not segment.inverted:
        return segment.current_start + (original_position - segment.original_start)
    return segment.current_end - (original_position - segment.original_start)


def to_original(segment: ScaffoldSegment, current_position: Number) -> Number:
    if not segment.inverted:
        return segment.original_start + (current_position - segment.current_start)
    return segment.original_start + (segment.current_end - current_position)


def lift_interval(segment: ScaffoldSegment, start: Number, end: Number) -> Tuple[Number, Number]:
    """
    Lifts [start, end) from original to current coordinates, result is always low-to-high.
    """
    lifted_start = to_current(segment, start)
    lifted_end = to_current(segment, end)
    if segment.inverted:
        return lifted_end, lifted_start
    return lifted_start, lifted_end


def lower_interval(segment: ScaffoldSegment, start: Number, end: Number) -> Tuple[Number, Number]:
    """
    Inverse of lift_interval: current coordinates to original ones.
    """
    lowered_start = to_original(segment, start)
    lowered_end = to_original(segment, end)
    if segment.inverted:
        return lowered_end, lowered_start
    return lowered_start, lowered_end


def clip_original_bounds(
    segment: ScaffoldSegment,
    view_start: float,
    view_end: float,
    config: RenderConfig
) -> Tuple[int, int]:
    """
    Original-space storage bounds of the part of segment visible in [view_start, view_end).

    View bounds are in display coordinates. The segment bounds are clipped to the view first and
    only then lifted: for inverted segments the left view edge moves the right original bound and
    vice versa.

    :return: (start, end) in storage coordinates of the original space.
    """
    x1 = int(unscaled(segment.original_start, config))
    x2 = int(unscaled(segment.original_end, config))

    if segment.current_start < view_start:
        if not segment.inverted:
            x1 = int(unscaled(segment.original_start + view_start - segment.current_start, config))
        else:
            x2 = int(unscaled(segment.original_start - view_start + segment.current_end, config))

    if segment.current_end > view_end:
        if not segment.inverted:
            x2 = int(unscaled(segment.original_start + view_end - segment.current_start, config))
        else:
            x1 = int(unscaled(segment.original_start - view_end + segment.current_end, config))

    return x1, x2


def lift_genomic_interval(
    segment: ScaffoldSegment,
    genomic_start: Number,
    genomic_end: Number,
    config: RenderConfig
) -> Tuple[int, int]:
    """
    Lifts a storage-space interval; the lifted interval keeps the length of the input.
    """
    if not segment.inverted:
        new_start = int(unscaled(
            segment.current_start + scaled(genomic_start, config) - segment.original_start, config))
    else:
        new_start = int(unscaled(
            segment.current_end - scaled(genomic_end, config) + segment.original_start, config))
    return new_start, new_start + int(genomic_end - genomic_start)


def lift_bin(
    segment: ScaffoldSegment,
    bin_number: Number,
    bin_size: int,
    config: RenderConfig
) -> int:
    if not segment.inverted:
        return int(unscaled(
            segment.current_start + scaled(bin_number * bin_size, config) - segment.original_start,
            config
        ) / bin_size)
    # Bin start maps to the bin end after inversion, hence one bin back
    return int(unscaled(
        segment.current_end - scaled(bin_number * bin_size, config) + segment.original_start,
        config
    ) / bin_size - 1)


def lift_position(
    segment: ScaffoldSegment,
    genomic_position: Number,
    config: RenderConfig
) -> float:
    """
    Storage-space original position -> storage-space current position.
    """
    return unscaled(to_current(segment, scaled(genomic_position, config)), config)


def lower_position(
    segment: ScaffoldSegment,
    genomic_position: Number,
    config: RenderConfig
) -> float:
    return unscaled(to_original(segment, scaled(genomic_position, config)), config)
