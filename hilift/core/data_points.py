from enum import Enum
from typing import Iterable, Optional, Tuple, Union

from frozendict import frozendict
from recordclass import RecordClass

from hilift.core.common import RenderConfig, Strand
from hilift.core.coordinate_lifter import lift_bin, lift_genomic_interval
from hilift.core.scaffold_map import ScaffoldSegment


class DataPointKind(Enum):
    COVERAGE = 0
    ACCUMULATOR = 1
    FEATURE = 2


class CoverageDataPoint(RecordClass):
    bin_number: int
    genomic_start: int
    genomic_end: int
    value: float

    @property
    def kind(self) -> DataPointKind:
        return DataPointKind.COVERAGE

    def lifted(
        self,
        segment: ScaffoldSegment,
        bin_size: int,
        config: RenderConfig,
        visible_original: Optional[Tuple[int, int]] = None
    ) -> 'CoverageDataPoint':
        new_start, new_end = lift_genomic_interval(
            segment, self.genomic_start, self.genomic_end, config)
        return CoverageDataPoint(
            int(new_start / bin_size),
            new_start,
            new_end,
            self.value
        )


class DataAccumulator(RecordClass):
    bin_number: int
    width: int
    genomic_start: int
    genomic_end: int
    n_pts: int = 0
    weighted_sum: float = 0.0
    max_value: float = float('-inf')

    @property
    def kind(self) -> DataPointKind:
        return DataPointKind.ACCUMULATOR

    @property
    def mean(self) -> float:
        if self.n_pts == 0:
            return float('nan')
        return self.weighted_sum / self.n_pts

    def add(self, value: float, weight: int = 1) -> None:
        self.n_pts += weight
        self.weighted_sum += weight * value
        self.max_value = max(self.max_value, value)

    def lifted(
        self,
        segment: ScaffoldSegment,
        bin_size: int,
        config: RenderConfig,
        visible_original: Optional[Tuple[int, int]] = None
    ) -> 'DataAccumulator':
        new_start, new_end = lift_genomic_interval(
            segment, self.genomic_start, self.genomic_end, config)
        return DataAccumulator(
            lift_bin(segment, self.bin_number, bin_size, config),
            self.width,
            new_start,
            new_end,
            self.n_pts,
            self.weighted_sum,
            self.max_value
        )


class Exon(RecordClass):
    genomic_start: int
    genomic_end: int
    strand: Strand = Strand.NONE


def fractional_bin(position: Union[int, float], bin_size: int) -> float:
    return position / bin_size


def overlaps_visible_bins(
    genomic_start: Union[int, float],
    genomic_end: Union[int, float],
    visible_original: Tuple[int, int],
    bin_size: int
) -> bool:
    x1, x2 = visible_original
    return not (
        fractional_bin(genomic_end, bin_size) < int(x1 / bin_size)
        or fractional_bin(genomic_start, bin_size) > int(x2 / bin_size)
    )


class FeatureInterval(RecordClass):
    chromosome: str
    name: str
    genomic_start: int
    genomic_end: int
    strand: Strand = Strand.NONE
    exons: Tuple[Exon, ...] = ()
    is_bed: bool = True
    attributes: frozendict = frozendict()

    @staticmethod
    def make_feature(
        chromosome: str,
        name: str,
        genomic_start: int,
        genomic_end: int,
        strand: Strand = Strand.NONE,
        exons: Optional[Iterable[Exon]] = None,
        is_bed: bool = True,
        attributes: Optional[dict] = None
    ) -> 'FeatureInterval':
        assert (
            genomic_start <= genomic_end
        ), f"Feature {name} should have its start preceeding end ({genomic_start} <= {genomic_end})"
        return FeatureInterval(
            chromosome,
            name,
            int(genomic_start),
            int(genomic_end),
            strand,
            tuple(exons) if exons is not None else (),
            is_bed,
            frozendict(attributes) if attributes is not None else frozendict()
        )

    @property
    def kind(self) -> DataPointKind:
        return DataPointKind.FEATURE

    def bin_number(self, bin_size: int) -> int:
        return int(self.genomic_start / bin_size)

    def lifted(
        self,
        segment: ScaffoldSegment,
        bin_size: int,
        config: RenderConfig,
        visible_original: Optional[Tuple[int, int]] = None
    ) -> 'FeatureInterval':
        """
        Fraction of this feature inside the visible part of segment, lifted to current coordinates.
        Strand is flipped on inverted segments for BED features only.
        """
        x1, x2 = visible_original if visible_original is not None else (
            self.genomic_start, self.genomic_end)
        fraction_start = max(self.genomic_start, x1)
        fraction_end = min(self.genomic_end, x2)
        new_start, new_end = lift_genomic_interval(segment, fraction_start, fraction_end, config)
        new_strand = self.strand.flipped() if (segment.inverted and self.is_bed) else self.strand

        new_exons = []
        for exon in self.exons:
            if not overlaps_visible_bins(exon.genomic_start, exon.genomic_end, (x1, x2), bin_size):
                continue
            exon_start, exon_end = lift_genomic_interval(
                segment,
                max(exon.genomic_start, x1),
                min(exon.genomic_end, x2),
                config
            )
            new_exons.append(Exon(exon_start, exon_end, new_strand))

        return FeatureInterval(
            self.chromosome,
            self.name,
            new_start,
            new_end,
            new_strand,
            tuple(new_exons),
            self.is_bed,
            self.attributes
        )


DataPoint = Union[CoverageDataPoint, DataAccumulator, FeatureInterval]
