import logging
import threading
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from frozendict import frozendict

from hilift.core.common import (CONTACT_RECORD_DTYPE, NONE_NORMALIZATION, Block,
                                Chromosome, DataUnavailableError, HiCUnit,
                                HiCZoom, make_contact_records)
from hilift.core.data_points import (CoverageDataPoint, DataAccumulator,
                                     DataPoint, FeatureInterval)

logger = logging.getLogger(__name__)


class ContactStorage(object):
    """
    Storage collaborator of one matrix at one zoom: enumerates and loads blocks.
    """

    @property
    def key(self) -> str:
        raise NotImplementedError()

    def get_block_numbers_for_region(
        self,
        bin_x0: int,
        bin_y0: int,
        bin_x1: int,
        bin_y1: int
    ) -> List[int]:
        """
        Block numbers that may hold records of the inclusive bin rectangle [x0, x1] x [y0, y1].
        """
        raise NotImplementedError()

    def load_blocks(
        self,
        block_numbers: Iterable[int],
        normalization: str
    ) -> Dict[int, Block]:
        raise NotImplementedError()


class MatrixZoomSource(ContactStorage):
    chromosome_x: Chromosome
    chromosome_y: Chromosome
    zoom: HiCZoom

    @property
    def bin_count_x(self) -> int:
        raise NotImplementedError()

    @property
    def bin_count_y(self) -> int:
        raise NotImplementedError()

    @property
    def block_bin_count(self) -> int:
        raise NotImplementedError()

    @property
    def block_column_count(self) -> int:
        raise NotImplementedError()

    def is_intra(self) -> bool:
        return self.chromosome_x.index == self.chromosome_y.index

    def iterate_records(self, normalization: str) -> Iterator[np.ndarray]:
        """
        Yields chunks of contact records (CONTACT_RECORD_DTYPE) of the whole matrix.
        """
        raise NotImplementedError()


class Dataset(object):
    chromosomes: Tuple[Chromosome, ...]
    normalization_types: Tuple[str, ...]

    @property
    def key(self) -> str:
        raise NotImplementedError()

    def get_chromosome(self, name: str) -> Optional[Chromosome]:
        raise NotImplementedError()

    def get_zooms(self, unit: HiCUnit) -> List[HiCZoom]:
        """
        Available zooms of the given unit, from the coarsest to the finest.
        """
        raise NotImplementedError()

    def get_matrix(self, chromosome_x: Chromosome, chromosome_y: Chromosome) -> Optional['Matrix']:
        raise NotImplementedError()


class Matrix(object):
    chromosome_x: Chromosome
    chromosome_y: Chromosome

    @property
    def zooms(self) -> List[HiCZoom]:
        raise NotImplementedError()

    def get_zoom_data(self, zoom: HiCZoom) -> Optional[MatrixZoomSource]:
        raise NotImplementedError()

    def get_first_zoom_data(self, unit: HiCUnit) -> Optional[MatrixZoomSource]:
        raise NotImplementedError()


class TrackSource(object):
    """
    1-D track served in original coordinates.
    """

    def get_data(
        self,
        chromosome: Chromosome,
        start_bin: int,
        end_bin: int,
        bin_size: int
    ) -> List[DataPoint]:
        raise NotImplementedError()


class InMemoryMatrixZoomData(MatrixZoomSource):
    """
    Contact matrix of one chromosome pair at one zoom kept in numpy arrays.
    Intra-chromosomal matrices keep the upper triangle only (bin_x <= bin_y).
    """

    def __init__(
        self,
        chromosome_x: Chromosome,
        chromosome_y: Chromosome,
        zoom: HiCZoom,
        records: np.ndarray,
        block_bin_count: int = 256,
        normalization_vectors: Optional[Dict[str, Tuple[np.ndarray, np.ndarray]]] = None
    ) -> None:
        super().__init__()
        assert (
            block_bin_count > 0
        ), "Block should contain at least one bin"
        assert (
            records.dtype == CONTACT_RECORD_DTYPE
        ), f"Records should be of contact record type, got {records.dtype}"
        self.chromosome_x: Chromosome = chromosome_x
        self.chromosome_y: Chromosome = chromosome_y
        self.zoom: HiCZoom = zoom
        self._bin_count_x: int = 1 + (chromosome_x.length - 1) // zoom.bin_size
        self._bin_count_y: int = 1 + (chromosome_y.length - 1) // zoom.bin_size
        self._block_bin_count: int = int(block_bin_count)
        self._block_column_count: int = 1 + (
            max(self._bin_count_x, self._bin_count_y) - 1) // self._block_bin_count
        self.normalization_vectors: frozendict = frozendict(
            normalization_vectors if normalization_vectors is not None else dict())

        records = records.copy()
        if self.is_intra():
            lower = records['bin_x'] > records['bin_y']
            swapped_x = records['bin_y'][lower]
            records['bin_y'][lower] = records['bin_x'][lower]
            records['bin_x'][lower] = swapped_x

        block_numbers = self.block_number_of(records['bin_x'], records['bin_y'])
        order = np.argsort(block_numbers, kind='stable')
        records = records[order]
        block_numbers = block_numbers[order]
        unique_numbers, starts = np.unique(block_numbers, return_index=True)
        ends = np.append(starts[1:], len(records))
        self.blocks: Dict[int, np.ndarray] = {
            int(n): records[s:e] for n, s, e in zip(unique_numbers, starts, ends)
        }
        self.load_lock: threading.Lock = threading.Lock()
        self.loaded_block_numbers: List[int] = []

    @staticmethod
    def from_records(
        chromosome_x: Chromosome,
        chromosome_y: Chromosome,
        zoom: HiCZoom,
        bin_x: Sequence[int],
        bin_y: Sequence[int],
        counts: Sequence[float],
        block_bin_count: int = 256,
        normalization_vectors: Optional[Dict[str, Tuple[np.ndarray, np.ndarray]]] = None
    ) -> 'InMemoryMatrixZoomData':
        return InMemoryMatrixZoomData(
            chromosome_x,
            chromosome_y,
            zoom,
            make_contact_records(bin_x, bin_y, counts),
            block_bin_count=block_bin_count,
            normalization_vectors=normalization_vectors
        )

    @property
    def key(self) -> str:
        return f"{self.chromosome_x.name}_{self.chromosome_y.name}_{self.zoom.key}"

    @property
    def bin_count_x(self) -> int:
        return self._bin_count_x

    @property
    def bin_count_y(self) -> int:
        return self._bin_count_y

    @property
    def block_bin_count(self) -> int:
        return self._block_bin_count

    @property
    def block_column_count(self) -> int:
        return self._block_column_count

    def block_number_of(self, bin_x, bin_y):
        return (bin_y // self._block_bin_count) * self._block_column_count + (bin_x // self._block_bin_count)

    def _block_numbers_in_rectangle(self, x0: int, y0: int, x1: int, y1: int) -> List[int]:
        max_block = self._block_column_count - 1
        col0 = max(0, x0 // self._block_bin_count)
        col1 = min(max_block, x1 // self._block_bin_count)
        row0 = max(0, y0 // self._block_bin_count)
        row1 = min(max_block, y1 // self._block_bin_count)
        return [
            row * self._block_column_count + col
            for row in range(row0, 1 + row1)
            for col in range(col0, 1 + col1)
        ]

    def get_block_numbers_for_region(
        self,
        bin_x0: int,
        bin_y0: int,
        bin_x1: int,
        bin_y1: int
    ) -> List[int]:
        numbers = set(self._block_numbers_in_rectangle(bin_x0, bin_y0, bin_x1, bin_y1))
        if self.is_intra():
            numbers.update(self._block_numbers_in_rectangle(bin_y0, bin_x0, bin_y1, bin_x1))
        return sorted(numbers)

    def normalize(self, records: np.ndarray, normalization: str) -> np.ndarray:
        if normalization == NONE_NORMALIZATION:
            return records.copy()
        if normalization not in self.normalization_vectors:
            raise DataUnavailableError(
                f"Normalization {normalization} is not available for {self.key}")
        vector_x, vector_y = self.normalization_vectors[normalization]
        normalized = records.copy()
        with np.errstate(divide='ignore', invalid='ignore'):
            normalized['counts'] = records['counts'] / (
                vector_x[records['bin_x']] * vector_y[records['bin_y']])
        return normalized[np.isfinite(normalized['counts'])]

    def load_blocks(
        self,
        block_numbers: Iterable[int],
        normalization: str
    ) -> Dict[int, Block]:
        block_numbers = sorted(set(int(n) for n in block_numbers))
        with self.load_lock:
            self.loaded_block_numbers.extend(block_numbers)
        return {
            n: Block.make_block(
                n,
                normalization,
                self.normalize(self.blocks[n], normalization) if n in self.blocks else None
            ) for n in block_numbers
        }

    def iterate_records(self, normalization: str) -> Iterator[np.ndarray]:
        for block_number in sorted(self.blocks.keys()):
            yield self.normalize(self.blocks[block_number], normalization)


class InMemoryMatrix(Matrix):
    def __init__(
        self,
        chromosome_x: Chromosome,
        chromosome_y: Chromosome,
        zoom_data: Iterable[MatrixZoomSource]
    ) -> None:
        super().__init__()
        self.chromosome_x: Chromosome = chromosome_x
        self.chromosome_y: Chromosome = chromosome_y
        self.zoom_data: Dict[HiCZoom, MatrixZoomSource] = {
            zd.zoom: zd for zd in zoom_data
        }

    @property
    def zooms(self) -> List[HiCZoom]:
        return list(self.zoom_data.keys())

    def get_zoom_data(self, zoom: HiCZoom) -> Optional[MatrixZoomSource]:
        return self.zoom_data.get(zoom)

    def get_first_zoom_data(self, unit: HiCUnit) -> Optional[MatrixZoomSource]:
        zooms = sorted(
            (z for z in self.zoom_data.keys() if z.unit == unit),
            key=lambda z: z.bin_size,
            reverse=True
        )
        if len(zooms) == 0:
            return None
        return self.zoom_data[zooms[0]]


class InMemoryDataset(Dataset):
    def __init__(
        self,
        chromosomes: Iterable[Chromosome],
        matrices: Iterable[Matrix],
        normalization_types: Iterable[str] = (NONE_NORMALIZATION,),
        key: str = 'dataset'
    ) -> None:
        super().__init__()
        self.chromosomes: Tuple[Chromosome, ...] = tuple(
            sorted(chromosomes, key=lambda c: c.index))
        self.chromosome_by_name: frozendict = frozendict(
            {c.name.lower(): c for c in self.chromosomes})
        self.matrices: Dict[Tuple[int, int], Matrix] = dict()
        for m in matrices:
            i, j = m.chromosome_x.index, m.chromosome_y.index
            self.matrices[(min(i, j), max(i, j))] = m
        self.normalization_types: Tuple[str, ...] = tuple(normalization_types)
        self._key: str = key

    @property
    def key(self) -> str:
        return self._key

    def get_chromosome(self, name: str) -> Optional[Chromosome]:
        return self.chromosome_by_name.get(name.lower())

    def get_matrix(self, chromosome_x: Chromosome, chromosome_y: Chromosome) -> Optional[Matrix]:
        i, j = chromosome_x.index, chromosome_y.index
        return self.matrices.get((min(i, j), max(i, j)))

    def get_zooms(self, unit: HiCUnit) -> List[HiCZoom]:
        zooms = set()
        for m in self.matrices.values():
            zooms.update(z for z in m.zooms if z.unit == unit)
        return sorted(zooms, key=lambda z: z.bin_size, reverse=True)


class InMemoryCoverageSource(TrackSource):
    """
    Coverage track made of (start, end, value) intervals per chromosome name.
    """

    def __init__(self, intervals: Dict[str, Sequence[Tuple[int, int, float]]]) -> None:
        super().__init__()
        self.intervals: Dict[str, Tuple[Tuple[int, int, float], ...]] = {
            name: tuple(sorted(values)) for name, values in intervals.items()
        }

    def get_data(
        self,
        chromosome: Chromosome,
        start_bin: int,
        end_bin: int,
        bin_size: int
    ) -> List[DataPoint]:
        points: List[DataPoint] = []
        for start, end, value in self.intervals.get(chromosome.name, ()):
            bin_number = start // bin_size
            if start_bin <= bin_number <= end_bin:
                points.append(CoverageDataPoint(bin_number, start, end, value))
        return points


class InMemorySignalSource(TrackSource):
    """
    Wiggle-like signal summarized into one accumulator per bin.
    """

    def __init__(self, intervals: Dict[str, Sequence[Tuple[int, int, float]]]) -> None:
        super().__init__()
        self.intervals: Dict[str, Tuple[Tuple[int, int, float], ...]] = {
            name: tuple(sorted(values)) for name, values in intervals.items()
        }

    def get_data(
        self,
        chromosome: Chromosome,
        start_bin: int,
        end_bin: int,
        bin_size: int
    ) -> List[DataPoint]:
        accumulators: Dict[int, DataAccumulator] = dict()
        for start, end, value in self.intervals.get(chromosome.name, ()):
            first_bin = max(start_bin, start // bin_size)
            last_bin = min(end_bin, (end - 1) // bin_size)
            for bin_number in range(first_bin, 1 + last_bin):
                if bin_number not in accumulators:
                    accumulators[bin_number] = DataAccumulator(
                        bin_number,
                        bin_size,
                        bin_number * bin_size,
                        (1 + bin_number) * bin_size
                    )
                accumulators[bin_number].add(value)
        return [accumulators[b] for b in sorted(accumulators.keys())]


class InMemoryFeatureSource(object):
    def __init__(self, features: Iterable[FeatureInterval]) -> None:
        super().__init__()
        self.features: Dict[str, List[FeatureInterval]] = dict()
        for f in features:
            self.features.setdefault(f.chromosome, []).append(f)
        for fs in self.features.values():
            fs.sort(key=lambda f: (f.genomic_start, f.genomic_end))

    def get_features(self, chromosome: Chromosome) -> List[FeatureInterval]:
        return list(self.features.get(chromosome.name, ()))
