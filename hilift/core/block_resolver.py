import logging
from concurrent.futures import Future
from typing import Dict, Generic, Iterable, List, Optional, Sequence, Set, Tuple, TypeVar

import numpy as np

from hilift.core.block_cache import BlockCache
from hilift.core.common import (Block, BlockCacheKey, BlockLoadingError,
                                Chromosome, HiCZoom, RenderConfig)
from hilift.core.contact_store import Dataset, MatrixZoomSource, TrackSource
from hilift.core.coordinate_lifter import clip_original_bounds, scaled
from hilift.core.data_points import (DataPoint, FeatureInterval,
                                     overlaps_visible_bins)
from hilift.core.scaffold_map import ScaffoldMap, ScaffoldSegment
from hilift.util.long_task import LongTaskExecutor
from hilift.util.persistence.counter import ViewEpoch

logger = logging.getLogger(__name__)

T = TypeVar('T')


def actual_bin_size(chromosome: Chromosome, zoom: HiCZoom, config: RenderConfig) -> int:
    """
    Bin size along the axis of chromosome: the All pseudo-chromosome is binned in kilobases.
    """
    if chromosome.is_all_by_all():
        return zoom.bin_size * config.all_by_all_bin_multiplier
    return zoom.bin_size


def storage_key(dataset: Dataset, source: MatrixZoomSource) -> str:
    return f"{dataset.key}/{source.key}"


class EpochGuardedResult(Generic[T]):
    """
    Result of a background query tied to the view epoch it was started in.
    """

    def __init__(self, future: 'Future[T]', epoch: ViewEpoch, captured_epoch: np.int64) -> None:
        super().__init__()
        self.future: 'Future[T]' = future
        self.epoch: ViewEpoch = epoch
        self.captured_epoch: np.int64 = captured_epoch

    def is_stale(self) -> bool:
        return not self.epoch.is_current(self.captured_epoch)

    def consume(self, timeout: Optional[float] = None) -> Optional[T]:
        """
        Waits for the result and returns it, or None if the view moved on meanwhile.
        Failures of the background query are re-raised.
        """
        result = self.future.result(timeout=timeout)
        if self.is_stale():
            logger.warning(
                f"Discarding result computed for epoch {self.captured_epoch}, current epoch is {self.epoch.get()}")
            return None
        return result


class BlockResolver(object):
    def __init__(self, block_cache: Optional[BlockCache] = None) -> None:
        super().__init__()
        self.block_cache: BlockCache = block_cache if block_cache is not None else BlockCache()

    @staticmethod
    def find_block_numbers(
        source: MatrixZoomSource,
        bin_x1: int,
        bin_x2: int,
        bin_y1: int,
        bin_y2: int,
        scaffold_map_x: ScaffoldMap,
        scaffold_map_y: ScaffoldMap,
        bin_size_x: int,
        bin_size_y: int,
        config: RenderConfig
    ) -> Set[int]:
        x_start = scaled(bin_x1 * bin_size_x, config)
        x_end = scaled(bin_x2 * bin_size_x, config)
        y_start = scaled(bin_y1 * bin_size_y, config)
        y_end = scaled(bin_y2 * bin_size_y, config)

        x_segments = scaffold_map_x.get_intersecting_aggregate_segments(x_start, x_end)
        y_segments = scaffold_map_y.get_intersecting_aggregate_segments(y_start, y_end)

        x_bounds: List[Tuple[int, int]] = [
            clip_original_bounds(s, x_start, x_end, config) for s in x_segments
        ]
        y_bounds: List[Tuple[int, int]] = [
            clip_original_bounds(s, y_start, y_end, config) for s in y_segments
        ]

        pending: Set[int] = set()
        for x1, x2 in x_bounds:
            for y1, y2 in y_bounds:
                if config.phasing and (
                    (x2 - x1) < bin_size_x / 2 or (y2 - y1) < bin_size_y / 2
                ):
                    continue
                pending.update(source.get_block_numbers_for_region(
                    int(x1 / bin_size_x),
                    int(y1 / bin_size_y),
                    int(x2 / bin_size_x),
                    int(y2 / bin_size_y)
                ))
        return pending

    def resolve_blocks(
        self,
        dataset: Optional[Dataset],
        chromosome_x: Chromosome,
        chromosome_y: Chromosome,
        zoom: HiCZoom,
        bin_x1: int,
        bin_x2: int,
        bin_y1: int,
        bin_y2: int,
        normalization: str,
        scaffold_map_x: ScaffoldMap,
        scaffold_map_y: ScaffoldMap,
        config: RenderConfig
    ) -> List[Block]:
        """
        Blocks holding the contacts of a current-space viewport, in ascending block number order.

        Viewport edges are bins of the current (edited) assembly. Every pair of aggregate segments
        visible on the two axes is clipped to the viewport in original space and enumerated with
        the storage block scheme. Blocks stay in original coordinates.

        :return: Deduplicated blocks or an empty list when the chromosome pair or zoom has no data.
        """
        source = BlockResolver.find_source(dataset, chromosome_x, chromosome_y, zoom)
        if source is None:
            return []

        block_numbers = BlockResolver.find_block_numbers(
            source,
            bin_x1,
            bin_x2,
            bin_y1,
            bin_y2,
            scaffold_map_x,
            scaffold_map_y,
            actual_bin_size(chromosome_x, zoom, config),
            actual_bin_size(chromosome_y, zoom, config),
            config
        )
        logger.debug(
            f"Viewport [{bin_x1}, {bin_x2}] x [{bin_y1}, {bin_y2}] of {source.key} resolves to {len(block_numbers)} block(s)")
        loaded = self.load_blocks(
            source, storage_key(dataset, source), block_numbers, normalization, config)
        return [loaded[n] for n in sorted(loaded.keys())]

    @staticmethod
    def find_source(
        dataset: Optional[Dataset],
        chromosome_x: Chromosome,
        chromosome_y: Chromosome,
        zoom: HiCZoom
    ) -> Optional[MatrixZoomSource]:
        if dataset is None:
            logger.warning("No dataset is loaded")
            return None
        matrix = dataset.get_matrix(chromosome_x, chromosome_y)
        if matrix is None:
            logger.warning(f"No matrix for {chromosome_x.name} x {chromosome_y.name}")
            return None
        source = matrix.get_zoom_data(zoom)
        if source is None:
            logger.warning(f"Zoom {zoom} is unavailable for {chromosome_x.name} x {chromosome_y.name}")
        return source

    @staticmethod
    def fetch_blocks(
        source: MatrixZoomSource,
        dataset_key: str,
        block_numbers: Sequence[int],
        normalization: str
    ) -> Dict[int, Block]:
        try:
            loaded = source.load_blocks(block_numbers, normalization)
        except BlockLoadingError:
            raise
        except Exception as e:
            raise BlockLoadingError(dataset_key, block_numbers, normalization) from e
        return {
            n: loaded[n] if n in loaded else Block.make_block(n, normalization)
            for n in block_numbers
        }

    def load_blocks(
        self,
        source: MatrixZoomSource,
        dataset_key: str,
        block_numbers: Iterable[int],
        normalization: str,
        config: RenderConfig
    ) -> Dict[int, Block]:
        """
        Cached blocks plus one batched load of the missing ones; a block is loaded at most once
        even when several queries need it at the same time.
        """
        block_numbers = sorted(set(int(n) for n in block_numbers))
        if len(block_numbers) == 0:
            return dict()
        if not config.use_cache:
            return BlockResolver.fetch_blocks(source, dataset_key, block_numbers, normalization)

        result: Dict[int, Block] = dict()
        pending: List[BlockCacheKey] = [
            (dataset_key, n, normalization) for n in block_numbers
        ]
        while len(pending) > 0:
            cached, claimed, awaited = self.block_cache.claim_missing(pending)
            result.update({key[1]: block for key, block in cached.items()})
            if len(claimed) > 0:
                published = False
                try:
                    loaded = BlockResolver.fetch_blocks(
                        source, dataset_key, [key[1] for key in claimed], normalization)
                    self.block_cache.publish({key: loaded[key[1]] for key in claimed})
                    published = True
                finally:
                    # Waiters of the claimed keys are released even on KeyboardInterrupt
                    if not published:
                        self.block_cache.abandon(claimed)
                result.update(loaded)
            if len(awaited) > 0:
                self.block_cache.wait_for_in_flight(awaited)
            pending = awaited
        return result

    def resolve_blocks_async(
        self,
        executor: LongTaskExecutor,
        epoch: ViewEpoch,
        *args,
        **kwargs
    ) -> EpochGuardedResult[List[Block]]:
        """
        Runs resolve_blocks() on the executor; the result is discarded by consume() if the epoch
        moves before it is consumed.
        """
        captured_epoch = epoch.get()
        future = executor.submit(
            self.resolve_blocks, *args, label='Loading blocks', **kwargs)
        return EpochGuardedResult(future, epoch, captured_epoch)

    def get_observed_value(
        self,
        dataset: Optional[Dataset],
        chromosome_x: Chromosome,
        chromosome_y: Chromosome,
        zoom: HiCZoom,
        bin_x: int,
        bin_y: int,
        normalization: str,
        config: RenderConfig
    ) -> float:
        source = BlockResolver.find_source(dataset, chromosome_x, chromosome_y, zoom)
        if source is None:
            return 0
        # Intra-chromosomal matrices keep the upper triangle only
        if source.is_intra() and bin_x > bin_y:
            bin_x, bin_y = bin_y, bin_x
        blocks = self.load_blocks(
            source,
            storage_key(dataset, source),
            source.get_block_numbers_for_region(bin_x, bin_y, bin_x, bin_y),
            normalization,
            config
        )
        for block in blocks.values():
            records = block.records
            hit = records[(records['bin_x'] == bin_x) & (records['bin_y'] == bin_y)]
            if len(hit) > 0:
                return float(hit['counts'][0])
        return 0

    @staticmethod
    def visible_original_ranges(
        scaffold_map: ScaffoldMap,
        bin_x1: int,
        bin_x2: int,
        bin_size: int,
        config: RenderConfig
    ) -> List[Tuple[ScaffoldSegment, Tuple[int, int]]]:
        view_start = scaled(bin_size * bin_x1, config)
        view_end = scaled(bin_size * bin_x2, config)
        return [
            (s, clip_original_bounds(s, view_start, view_end, config))
            for s in scaffold_map.get_intersecting_aggregate_segments(view_start, view_end)
        ]

    @staticmethod
    def lift_data_points(
        chromosome: Chromosome,
        bin_x1: int,
        bin_x2: int,
        zoom: HiCZoom,
        source: TrackSource,
        scaffold_map: ScaffoldMap,
        config: RenderConfig
    ) -> List[DataPoint]:
        """
        Track records of the current-space bin range [bin_x1, bin_x2], relabelled to current coordinates.
        Records outside the visible original range of the segment that was queried for them are
        dropped, as they are served by a neighbouring aggregate segment.
        """
        bin_size = actual_bin_size(chromosome, zoom, config)
        lifted: List[DataPoint] = []
        for segment, (x1, x2) in BlockResolver.visible_original_ranges(
                scaffold_map, bin_x1, bin_x2, bin_size, config):
            first_bin = int(x1 / bin_size)
            last_bin = int(x2 / bin_size)
            for point in source.get_data(chromosome, first_bin, last_bin, zoom.bin_size):
                if point.bin_number < first_bin or point.bin_number > last_bin:
                    continue
                lifted.append(point.lifted(segment, zoom.bin_size, config))
        return lifted

    @staticmethod
    def lift_features(
        chromosome: Chromosome,
        bin_x1: int,
        bin_x2: int,
        zoom: HiCZoom,
        features: Iterable[FeatureInterval],
        scaffold_map: ScaffoldMap,
        config: RenderConfig
    ) -> List[FeatureInterval]:
        """
        Splits every feature into its fractions visible in each aggregate segment and lifts them.
        """
        bin_size = actual_bin_size(chromosome, zoom, config)
        visible = BlockResolver.visible_original_ranges(
            scaffold_map, bin_x1, bin_x2, bin_size, config)
        lifted: List[FeatureInterval] = []
        for feature in features:
            for segment, bounds in visible:
                if not overlaps_visible_bins(feature.genomic_start, feature.genomic_end, bounds, bin_size):
                    continue
                lifted.append(feature.lifted(segment, bin_size, config, visible_original=bounds))
        return lifted
