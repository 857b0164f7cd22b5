import math

import pytest

from hilift.core.block_resolver import BlockResolver
from hilift.core.common import Chromosome, HiCUnit, HiCZoom, RenderConfig, Strand
from hilift.core.contact_store import (InMemoryCoverageSource,
                                       InMemoryFeatureSource,
                                       InMemorySignalSource)
from hilift.core.data_points import (DataAccumulator, DataPointKind, Exon,
                                     FeatureInterval, overlaps_visible_bins)
from hilift.core.scaffold_map import ScaffoldMap

CHR1 = Chromosome(1, 'chr1', 1000)
ZOOM = HiCZoom(HiCUnit.BP, 10)


def inverted_first() -> ScaffoldMap:
    return ScaffoldMap.from_lengths(
        [('A', 500), ('B', 500)],
        [('B', True), ('A', False)],
    )


def test_coverage_points_are_lifted():
    source = InMemoryCoverageSource({'chr1': [(520, 540, 1.0), (100, 120, 2.0)]})
    points = BlockResolver.lift_data_points(CHR1, 0, 100, ZOOM, source, inverted_first(), RenderConfig())
    assert [p.kind for p in points] == [DataPointKind.COVERAGE, DataPointKind.COVERAGE]
    assert [(p.bin_number, p.genomic_start, p.genomic_end, p.value) for p in points] == [
        (46, 460, 480, 1.0),
        (60, 600, 620, 2.0),
    ]


def test_coverage_outside_view_is_dropped():
    source = InMemoryCoverageSource({'chr1': [(520, 540, 1.0), (100, 120, 2.0)]})
    # Current [0, 300) shows original [700, 1000) of B only
    points = BlockResolver.lift_data_points(CHR1, 0, 30, ZOOM, source, inverted_first(), RenderConfig())
    assert points == []


def test_accumulators_keep_statistics():
    source = InMemorySignalSource({'chr1': [(520, 540, 3.0), (525, 530, 5.0)]})
    points = BlockResolver.lift_data_points(CHR1, 0, 100, ZOOM, source, inverted_first(), RenderConfig())
    assert all(isinstance(p, DataAccumulator) for p in points)
    assert [p.bin_number for p in points] == [47, 46]
    first, second = points
    assert (first.genomic_start, first.genomic_end) == (470, 480)
    assert first.n_pts == 2 and first.mean == pytest.approx(4.0) and first.max_value == 5.0
    assert second.n_pts == 1 and second.mean == pytest.approx(3.0)


def test_empty_accumulator_mean():
    assert math.isnan(DataAccumulator(0, 10, 0, 10).mean)


def gene(is_bed: bool = True) -> FeatureInterval:
    return FeatureInterval.make_feature(
        'chr1', 'gene', 480, 560, Strand.POSITIVE,
        exons=[Exon(482, 495, Strand.POSITIVE), Exon(530, 560, Strand.POSITIVE)],
        is_bed=is_bed,
        attributes={'ID': 'gene1'}
    )


def test_feature_is_split_between_scaffolds():
    features = InMemoryFeatureSource([gene()]).get_features(CHR1)
    lifted = BlockResolver.lift_features(CHR1, 0, 100, ZOOM, features, inverted_first(), RenderConfig())
    assert len(lifted) == 2
    in_b, in_a = lifted

    assert (in_b.genomic_start, in_b.genomic_end, in_b.strand) == (440, 500, Strand.NEGATIVE)
    assert [(e.genomic_start, e.genomic_end, e.strand) for e in in_b.exons] == [(440, 470, Strand.NEGATIVE)]

    assert (in_a.genomic_start, in_a.genomic_end, in_a.strand) == (980, 1000, Strand.POSITIVE)
    assert [(e.genomic_start, e.genomic_end) for e in in_a.exons] == [(982, 995)]
    assert in_a.attributes['ID'] == 'gene1'
    assert in_a.name == in_b.name == 'gene'


def test_non_bed_feature_keeps_strand():
    lifted = BlockResolver.lift_features(CHR1, 0, 100, ZOOM, [gene(is_bed=False)], inverted_first(), RenderConfig())
    assert all(f.strand == Strand.POSITIVE for f in lifted)


def test_feature_outside_view_is_dropped():
    far = FeatureInterval.make_feature('chr1', 'far', 10, 20)
    lifted = BlockResolver.lift_features(CHR1, 0, 30, ZOOM, [far], inverted_first(), RenderConfig())
    assert lifted == []


def test_overlaps_visible_bins():
    assert overlaps_visible_bins(100, 120, (0, 500), 10)
    assert overlaps_visible_bins(480, 500, (500, 1000), 10)
    assert not overlaps_visible_bins(482, 495, (500, 1000), 10)
    assert not overlaps_visible_bins(530, 560, (0, 500), 10)


def test_feature_source_groups_by_chromosome():
    source = InMemoryFeatureSource([
        FeatureInterval.make_feature('chr1', 'b', 300, 400),
        FeatureInterval.make_feature('chr1', 'a', 100, 200),
        FeatureInterval.make_feature('chr2', 'c', 0, 10),
    ])
    assert [f.name for f in source.get_features(CHR1)] == ['a', 'b']
    assert source.get_features(Chromosome(3, 'chr3', 10)) == []
    assert source.get_features(CHR1)[0].bin_number(30) == 3
