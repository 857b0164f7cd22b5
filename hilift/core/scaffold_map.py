import logging
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from frozendict import frozendict

from hilift.core.common import MalformedAssemblyError

logger = logging.getLogger(__name__)


class ScaffoldSegment(NamedTuple):
    """
    One reorderable piece of a chromosome. Coordinates are in base pairs, 0-based half-open.
    """
    segment_id: int
    name: str
    original_start: int
    original_end: int
    current_start: int
    current_end: int
    inverted: bool = False
    group_id: Optional[int] = None

    @staticmethod
    def make_scaffold_segment(
        segment_id: int,
        name: str,
        original_start: int,
        original_end: int,
        current_start: int,
        inverted: bool = False,
        group_id: Optional[int] = None,
    ) -> 'ScaffoldSegment':
        assert (
            original_start < original_end
        ), f"Segment {name} should have its start preceeding end ({original_start} < {original_end}), no empty segments are allowed"
        return ScaffoldSegment(
            segment_id=int(segment_id),
            name=name,
            original_start=int(original_start),
            original_end=int(original_end),
            current_start=int(current_start),
            current_end=int(current_start) + int(original_end) - int(original_start),
            inverted=bool(inverted),
            group_id=group_id,
        )

    @property
    def length(self) -> int:
        return self.original_end - self.original_start

    def intersects_current(self, start: float, end: float) -> bool:
        return self.current_start < end and self.current_end > start

    def contains_original(self, position: float) -> bool:
        return self.original_start <= position < self.original_end

    def is_collinear_with(self, successor: 'ScaffoldSegment') -> bool:
        """
        Whether successor continues this segment in original space with the same orientation,
        so both may be lifted as one segment.
        """
        if self.inverted != successor.inverted or self.current_end != successor.current_start:
            return False
        if not self.inverted:
            return self.original_end == successor.original_start
        return successor.original_end == self.original_start

    @staticmethod
    def merge(
        s1: 'ScaffoldSegment',
        s2: 'ScaffoldSegment'
    ) -> 'ScaffoldSegment':
        assert s1.is_collinear_with(s2), "Only collinear segments could be merged"
        return ScaffoldSegment(
            segment_id=s1.segment_id,
            name=s1.name,
            original_start=min(s1.original_start, s2.original_start),
            original_end=max(s1.original_end, s2.original_end),
            current_start=s1.current_start,
            current_end=s2.current_end,
            inverted=s1.inverted,
            group_id=s1.group_id if s1.group_id == s2.group_id else None,
        )


class ScaffoldMap(object):
    """
    Immutable ordered list of scaffold segments of one chromosome.
    Segments are sorted by current start, do not overlap and tile [0, chromosome_length) both in
    current and in original coordinates. A new map is built for every assembly edit.
    """

    def __init__(
        self,
        chromosome_length: int,
        segments: Iterable[ScaffoldSegment]
    ) -> None:
        super().__init__()
        ordered: Tuple[ScaffoldSegment, ...] = tuple(
            sorted(segments, key=lambda s: s.current_start))
        ScaffoldMap.validate(chromosome_length, ordered)
        self.chromosome_length: int = int(chromosome_length)
        self.segments: Tuple[ScaffoldSegment, ...] = ordered
        self.current_starts: np.ndarray = np.array(
            [s.current_start for s in ordered], dtype=np.int64)
        self.by_original: Tuple[ScaffoldSegment, ...] = tuple(
            sorted(ordered, key=lambda s: s.original_start))
        self.original_starts: np.ndarray = np.array(
            [s.original_start for s in self.by_original], dtype=np.int64)
        self.aggregate_segments: Tuple[ScaffoldSegment, ...] = ScaffoldMap.aggregate(ordered)
        self.aggregate_current_starts: np.ndarray = np.array(
            [s.current_start for s in self.aggregate_segments], dtype=np.int64)
        self.segment_by_id: frozendict = frozendict(
            {s.segment_id: s for s in ordered})

    @staticmethod
    def validate(
        chromosome_length: int,
        segments: Sequence[ScaffoldSegment]
    ) -> None:
        if chromosome_length <= 0:
            raise MalformedAssemblyError(
                f"Chromosome length should be positive, got {chromosome_length}")
        if len(segments) == 0:
            raise MalformedAssemblyError("Scaffold map should contain at least one segment")
        if len(set(s.segment_id for s in segments)) != len(segments):
            raise MalformedAssemblyError("Segment identifiers are not unique")

        expected_current_start: int = 0
        for s in segments:
            if s.original_end <= s.original_start:
                raise MalformedAssemblyError(f"Segment {s.name} is empty or reversed in original space")
            if s.current_end - s.current_start != s.original_end - s.original_start:
                raise MalformedAssemblyError(
                    f"Segment {s.name} changes its length: original {s.original_end - s.original_start} bp, current {s.current_end - s.current_start} bp"
                )
            if s.current_start != expected_current_start:
                raise MalformedAssemblyError(
                    f"Segment {s.name} starts at {s.current_start} but previous segment ends at {expected_current_start}"
                )
            expected_current_start = s.current_end
        if expected_current_start != chromosome_length:
            raise MalformedAssemblyError(
                f"Segments cover {expected_current_start} bp of current space but chromosome length is {chromosome_length}"
            )

        expected_original_start: int = 0
        for s in sorted(segments, key=lambda s: s.original_start):
            if s.original_start != expected_original_start:
                raise MalformedAssemblyError(
                    f"Original extents do not tile the chromosome: gap or overlap at {expected_original_start}"
                )
            expected_original_start = s.original_end
        if expected_original_start != chromosome_length:
            raise MalformedAssemblyError(
                f"Segments cover {expected_original_start} bp of original space but chromosome length is {chromosome_length}"
            )

    @staticmethod
    def aggregate(segments: Sequence[ScaffoldSegment]) -> Tuple[ScaffoldSegment, ...]:
        if len(segments) == 0:
            return tuple()
        merged: List[ScaffoldSegment] = [segments[0]]
        for s in segments[1:]:
            if merged[-1].is_collinear_with(s):
                merged[-1] = ScaffoldSegment.merge(merged[-1], s)
            else:
                merged.append(s)
        return tuple(merged)

    @staticmethod
    def identity(chromosome_length: int, name: str = 'chromosome') -> 'ScaffoldMap':
        return ScaffoldMap(
            chromosome_length,
            (
                ScaffoldSegment.make_scaffold_segment(
                    segment_id=0,
                    name=name,
                    original_start=0,
                    original_end=chromosome_length,
                    current_start=0,
                ),
            )
        )

    @staticmethod
    def from_lengths(
        original_layout: Sequence[Tuple[str, int]],
        current_order: Sequence[Tuple[str, bool]],
    ) -> 'ScaffoldMap':
        """
        Builds a map from the reference layout and an edited order of the same scaffolds.

        :param original_layout: (name, length_bp) of every scaffold in reference order.
        :param current_order: (name, inverted) of every scaffold in assembly order.
        :return: Validated scaffold map.
        """
        original_starts = dict()
        lengths = dict()
        position: int = 0
        for segment_id, (name, length) in enumerate(original_layout):
            if name in original_starts:
                raise MalformedAssemblyError(f"Scaffold name is not unique: {name}")
            original_starts[name] = (segment_id, position)
            lengths[name] = int(length)
            position += int(length)
        if len(current_order) != len(original_layout):
            raise MalformedAssemblyError(
                f"Assembly lists {len(current_order)} scaffolds while reference has {len(original_layout)}"
            )

        segments: List[ScaffoldSegment] = []
        current_start: int = 0
        for name, inverted in current_order:
            if name not in original_starts:
                raise MalformedAssemblyError(f"Unknown scaffold {name}")
            segment_id, original_start = original_starts[name]
            if lengths[name] <= 0:
                raise MalformedAssemblyError(f"Scaffold {name} has non-positive length")
            segments.append(ScaffoldSegment.make_scaffold_segment(
                segment_id=segment_id,
                name=name,
                original_start=original_start,
                original_end=original_start + lengths[name],
                current_start=current_start,
                inverted=inverted,
            ))
            current_start += lengths[name]
        return ScaffoldMap(position, segments)

    @staticmethod
    def search_intersecting(
        segments: Tuple[ScaffoldSegment, ...],
        starts: np.ndarray,
        start: float,
        end: float
    ) -> List[ScaffoldSegment]:
        if end <= start or len(segments) == 0:
            return []
        first: int = max(0, int(np.searchsorted(starts, start, side='right')) - 1)
        last: int = int(np.searchsorted(starts, end, side='left'))
        return [s for s in segments[first:last] if s.intersects_current(start, end)]

    def get_intersecting_segments(self, start: float, end: float) -> List[ScaffoldSegment]:
        """
        Segments whose current extent intersects [start, end).
        """
        return ScaffoldMap.search_intersecting(self.segments, self.current_starts, start, end)

    def get_intersecting_aggregate_segments(self, start: float, end: float) -> List[ScaffoldSegment]:
        """
        Same as get_intersecting_segments but collinear neighbours are merged into one segment.
        """
        return ScaffoldMap.search_intersecting(
            self.aggregate_segments, self.aggregate_current_starts, start, end)

    def segment_at_current(self, position: float) -> ScaffoldSegment:
        index: int = int(np.searchsorted(self.current_starts, position, side='right')) - 1
        index = max(0, min(index, len(self.segments) - 1))
        return self.segments[index]

    def segment_at_original(self, position: float) -> ScaffoldSegment:
        index: int = int(np.searchsorted(self.original_starts, position, side='right')) - 1
        index = max(0, min(index, len(self.by_original) - 1))
        return self.by_original[index]

    def is_identity(self) -> bool:
        return len(self.aggregate_segments) == 1 and not self.aggregate_segments[0].inverted

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self):
        return iter(self.segments)

    def __eq__(self, o: object) -> bool:
        if isinstance(o, ScaffoldMap):
            return (self.chromosome_length, self.segments) == (o.chromosome_length, o.segments)
        return False

    def __hash__(self) -> int:
        return hash((self.chromosome_length, self.segments))
