from enum import Enum
from typing import NamedTuple, Optional, Tuple, Union

import numpy as np
from recordclass import RecordClass


class HiCUnit(Enum):
    BP = 0
    FRAG = 1


class ScaffoldDirection(Enum):
    FORWARD = 1
    REVERSED = 0


class ZoomCallType(Enum):
    STANDARD = 0
    DRAG = 1
    DIRECT = 2
    INITIAL = 3
    # Only used when undoing and redoing zoom actions
    REVERSE = 4


class MatrixType(Enum):
    OBSERVED = 0
    EXPECTED = 1
    OE = 2
    PEARSON = 3
    CONTROL = 4
    CONTROL_PEARSON = 5
    VS = 6
    PEARSON_VS = 7

    @staticmethod
    def is_pearson_type(matrix_type: 'MatrixType') -> bool:
        return matrix_type in (
            MatrixType.PEARSON,
            MatrixType.CONTROL_PEARSON,
            MatrixType.PEARSON_VS,
        )


class Strand(Enum):
    POSITIVE = '+'
    NEGATIVE = '-'
    NONE = '.'

    def flipped(self) -> 'Strand':
        if self == Strand.POSITIVE:
            return Strand.NEGATIVE
        if self == Strand.NEGATIVE:
            return Strand.POSITIVE
        return self


NONE_NORMALIZATION: str = 'NONE'

ALL_CHROMOSOME_NAME: str = 'All'


class HiCZoom(NamedTuple):
    unit: HiCUnit
    bin_size: int

    @property
    def key(self) -> str:
        return f"{self.unit.name}_{self.bin_size}"

    def __str__(self) -> str:
        return self.key


class Chromosome(NamedTuple):
    index: int
    name: str
    length: int

    def is_all_by_all(self) -> bool:
        return self.index == 0 and self.name.lower() == ALL_CHROMOSOME_NAME.lower()

    def __str__(self) -> str:
        return self.name


class RenderConfig(NamedTuple):
    """
    Immutable set of display flags passed explicitly to lifting, block resolution and navigation.
    """
    # Ratio between scaffold (display) coordinates and storage coordinates
    hic_map_scale: float = 1.0
    # Skip scaffold pairs shorter than half a bin
    phasing: bool = False
    use_cache: bool = True
    block_cache_size: int = 64
    max_pearson_zoom: int = 50000
    viewport_width_px: int = 800
    viewport_height_px: int = 800
    all_by_all_bin_multiplier: int = 1000
    history_limit: int = 100
    multithreading_pool_size: int = 8

    def with_overrides(self, **kwargs) -> 'RenderConfig':
        return self._replace(**kwargs)

    @property
    def viewport_min_dimension_px(self) -> int:
        return min(self.viewport_width_px, self.viewport_height_px)


CONTACT_RECORD_DTYPE: np.dtype = np.dtype([
    ('bin_x', np.int64),
    ('bin_y', np.int64),
    ('counts', np.float64),
])


def make_contact_records(
    bin_x: Union[np.ndarray, list],
    bin_y: Union[np.ndarray, list],
    counts: Union[np.ndarray, list],
) -> np.ndarray:
    bin_x = np.asarray(bin_x, dtype=np.int64)
    bin_y = np.asarray(bin_y, dtype=np.int64)
    counts = np.asarray(counts, dtype=np.float64)
    assert (
        bin_x.shape == bin_y.shape == counts.shape
    ), f"Contact record columns have different lengths ({bin_x.shape}, {bin_y.shape}, {counts.shape})??"
    records = np.empty(shape=bin_x.shape, dtype=CONTACT_RECORD_DTYPE)
    records['bin_x'] = bin_x
    records['bin_y'] = bin_y
    records['counts'] = counts
    return records


class Block(RecordClass):
    block_number: int
    normalization: str
    records: np.ndarray

    @staticmethod
    def make_block(
        block_number: int,
        normalization: str,
        records: Optional[np.ndarray] = None
    ) -> 'Block':
        return Block(
            int(block_number),
            normalization,
            records if records is not None else np.empty(
                shape=(0,), dtype=CONTACT_RECORD_DTYPE)
        )

    def __len__(self) -> int:
        return len(self.records)


BlockCacheKey = Tuple[str, int, str]


class DataUnavailableError(Exception):
    """
    Requested chromosome pair, zoom or track has no backing data.
    """
    pass


class BlockLoadingError(Exception):
    """
    Storage collaborator failed to load a batch of blocks.
    """

    def __init__(self, dataset_key: str, block_numbers, normalization: str) -> None:
        super().__init__(
            f"Failed to load {len(block_numbers)} block(s) of {dataset_key} with normalization {normalization}"
        )
        self.dataset_key = dataset_key
        self.block_numbers = tuple(sorted(block_numbers))
        self.normalization = normalization


class MalformedAssemblyError(Exception):
    """
    Scaffold segment list violates length, ordering or coverage constraints.
    """
    pass


class ExpectedValueUnavailableError(Exception):
    """
    Not enough contacts to fit the distance-decay curve.
    """
    pass


def constrain_coordinate(
    x: Union[np.int64, int, float],
    lower: Union[np.int64, int, float],
    upper: Union[np.int64, int, float]
) -> Union[np.int64, int, float]:
    return max(min(x, upper), lower)
