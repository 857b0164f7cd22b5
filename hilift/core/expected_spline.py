import logging
import threading
from typing import Dict, Iterable, List, Tuple, Union

import numpy as np
from readerwriterlock import rwlock
from scipy.interpolate import CubicSpline

from hilift.core.common import (NONE_NORMALIZATION, Chromosome,
                                ExpectedValueUnavailableError)
from hilift.core.contact_store import MatrixZoomSource

logger = logging.getLogger(__name__)


def group_boundaries(length: int) -> List[int]:
    """
    Starts of the full distance groups covering [0, length): ten groups of one distance, then ten
    groups of five distances, then ten of twenty five and so on. The last element is the end of
    the last full group.
    """
    boundaries: List[int] = [0]
    group_size: int = 1
    while boundaries[-1] + group_size <= length:
        boundaries.append(boundaries[-1] + group_size)
        if (len(boundaries) - 1) % 10 == 0:
            group_size *= 5
    return boundaries


class LogExpectedSpline(object):
    """
    Distance-decay curve: expected contact count as a function of the distance from the diagonal.

    Records are aggregated per distance as sum of log1p(count), distances are collapsed into
    geometrically growing groups and a natural cubic spline is fitted over
    (mean log1p(distance), mean log1p(count)) of every group.
    """
    MIN_VALUES_IN_FINAL_BINS: int = 100

    def __init__(self, spline: CubicSpline, max_log_distance: float) -> None:
        super().__init__()
        self.spline: CubicSpline = spline
        self.max_log_distance: float = max_log_distance

    @staticmethod
    def accumulate(
        record_chunks: Iterable[np.ndarray],
        max_bin: int
    ) -> Tuple[np.ndarray, np.ndarray, int]:
        log_sums = np.zeros(shape=(max_bin,), dtype=np.float64)
        record_counts = np.zeros(shape=(max_bin,), dtype=np.int64)
        max_distance: int = 0
        for records in record_chunks:
            if len(records) == 0:
                continue
            distances = np.abs(records['bin_x'] - records['bin_y'])
            in_range = distances < max_bin
            distances = distances[in_range]
            if len(distances) == 0:
                continue
            np.add.at(log_sums, distances, np.log1p(records['counts'][in_range]))
            np.add.at(record_counts, distances, 1)
            max_distance = max(max_distance, int(distances.max()))
        return log_sums, record_counts, max_distance

    @staticmethod
    def collapse(
        log_sums: np.ndarray,
        record_counts: np.ndarray,
        max_distance_to_use: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        :return: (x, y) points of the fit, groups without records excluded.
        """
        length: int = len(log_sums)
        boundaries = np.array(group_boundaries(length), dtype=np.int64)
        cumulative_vals = np.concatenate(([0.0], np.cumsum(log_sums)))
        cumulative_counts = np.concatenate(([0], np.cumsum(record_counts)))
        cumulative_log_distances = np.concatenate(
            ([0.0], np.cumsum(np.log1p(np.arange(length, dtype=np.float64)))))

        starts = list(boundaries[:-1])
        ends = list(boundaries[1:])
        tail_start = int(boundaries[-1])
        tail_size = length - tail_start
        if tail_size > 10 and cumulative_counts[length] - cumulative_counts[tail_start] > LogExpectedSpline.MIN_VALUES_IN_FINAL_BINS:
            starts.append(tail_start)
            ends.append(length)
        starts = np.array(starts, dtype=np.int64)
        ends = np.array(ends, dtype=np.int64)

        vals = cumulative_vals[ends] - cumulative_vals[starts]
        counts = cumulative_counts[ends] - cumulative_counts[starts]
        distance_sums = cumulative_log_distances[ends] - cumulative_log_distances[starts]
        sizes = ends - starts

        # Last quartile of the distance range, anchored past the maximum distance
        quartile_start = int(0.75 * max_distance_to_use)
        vals = np.append(vals, log_sums[quartile_start:max_distance_to_use].sum())
        counts = np.append(counts, record_counts[quartile_start:max_distance_to_use].sum())
        distance_sums = np.append(distance_sums, np.log1p(max_distance_to_use) + 1)
        sizes = np.append(sizes, 1)

        usable = (sizes > 0) & (counts > 0)
        return distance_sums[usable] / sizes[usable], vals[usable] / counts[usable]

    @staticmethod
    def fit(
        record_chunks: Iterable[np.ndarray],
        max_bin: int
    ) -> 'LogExpectedSpline':
        assert max_bin > 0, "Matrix should contain at least one bin"
        log_sums, record_counts, max_distance = LogExpectedSpline.accumulate(record_chunks, max_bin)
        max_distance_to_use: int = min(max_bin, max_distance)
        x, y = LogExpectedSpline.collapse(log_sums, record_counts, max_distance_to_use)
        x, unique_indices = np.unique(x, return_index=True)
        y = y[unique_indices]
        if len(x) < 2:
            raise ExpectedValueUnavailableError(
                f"Only {len(x)} point(s) are available to fit the expected value curve")
        logger.debug(f"Fitting expected value spline over {len(x)} points")
        return LogExpectedSpline(
            CubicSpline(x, y, bc_type='natural'),
            float(np.log1p(max_distance_to_use))
        )

    @staticmethod
    def build(
        source: MatrixZoomSource,
        normalization: str,
        chromosome: Chromosome,
        bin_size: int
    ) -> 'LogExpectedSpline':
        max_bin: int = chromosome.length // bin_size + 1
        if normalization.lower() == NONE_NORMALIZATION.lower():
            normalization = NONE_NORMALIZATION
        return LogExpectedSpline.fit(source.iterate_records(normalization), max_bin)

    def expected(self, distance: Union[int, float, np.ndarray]) -> Union[float, np.ndarray]:
        """
        Expected count at distance (in bins); distances past the fitted range are clamped.
        """
        log_distance = np.clip(np.log1p(np.maximum(distance, 0)), 0, self.max_log_distance)
        value = np.expm1(self.spline(log_distance))
        if np.ndim(value) == 0:
            return float(value)
        return value

    def __call__(self, distance: Union[int, float, np.ndarray]) -> Union[float, np.ndarray]:
        return self.expected(distance)


class ExpectedValueCache(object):
    """
    Expected value curves per (chromosome index, bin size, normalization).
    """

    def __init__(self) -> None:
        super().__init__()
        self.models: Dict[Tuple[int, int, str], LogExpectedSpline] = dict()
        self.lock: rwlock.RWLockWrite = rwlock.RWLockWrite(lock_factory=threading.RLock)

    def get(self, chromosome_index: int, bin_size: int, normalization: str):
        with self.lock.gen_rlock():
            return self.models.get((chromosome_index, bin_size, normalization))

    def get_or_build(
        self,
        source: MatrixZoomSource,
        chromosome: Chromosome,
        bin_size: int,
        normalization: str
    ) -> LogExpectedSpline:
        key = (chromosome.index, bin_size, normalization)
        with self.lock.gen_rlock():
            if key in self.models:
                return self.models[key]
        with self.lock.gen_wlock():
            if key not in self.models:
                logger.info(
                    f"Building expected values of {chromosome.name} at {bin_size} bp with {normalization} normalization")
                self.models[key] = LogExpectedSpline.build(
                    source, normalization, chromosome, bin_size)
            return self.models[key]

    def __contains__(self, key: Tuple[int, int, str]) -> bool:
        with self.lock.gen_rlock():
            return key in self.models

    def __len__(self) -> int:
        with self.lock.gen_rlock():
            return len(self.models)

    def clear(self) -> None:
        with self.lock.gen_wlock():
            self.models.clear()
