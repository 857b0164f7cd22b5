import logging
from typing import Callable, List, NamedTuple, Optional, Tuple

from hilift.core.assembly_state import AssemblyState
from hilift.core.block_cache import BlockCache
from hilift.core.block_resolver import BlockResolver
from hilift.core.common import (NONE_NORMALIZATION, Chromosome,
                                DataUnavailableError, HiCUnit, HiCZoom,
                                MatrixType, RenderConfig, ZoomCallType,
                                constrain_coordinate)
from hilift.core.contact_store import Dataset, MatrixZoomSource
from hilift.core.expected_spline import ExpectedValueCache, LogExpectedSpline
from hilift.core.scaffold_map import ScaffoldMap
from hilift.core.zoom_history import ZoomAction, ZoomActionTracker
from hilift.util.long_task import LongTaskExecutor
from hilift.util.persistence.counter import ViewEpoch

logger = logging.getLogger(__name__)

MIN_SCALE_FACTOR: float = 1e-10
MAX_SCALE_FACTOR: float = 50.0


def constrain_scale_factor(scale_factor: float) -> float:
    return constrain_coordinate(scale_factor, MIN_SCALE_FACTOR, MAX_SCALE_FACTOR)


class GridAxis(NamedTuple):
    """
    Fixed-size binning of one chromosome axis.
    """
    bin_size: int
    bin_count: int
    chromosome_length: int

    def bin_number_for_genomic_position(self, position: float) -> int:
        return int(position // self.bin_size)

    def genomic_start(self, bin_number: float) -> int:
        return int(bin_number * self.bin_size)

    def genomic_end(self, bin_number: float) -> int:
        return min(self.chromosome_length, int((1 + bin_number) * self.bin_size))


class ViewState(NamedTuple):
    chromosome_x: Chromosome
    chromosome_y: Chromosome
    zoom: HiCZoom
    bin_origin_x: float
    bin_origin_y: float
    scale_factor: float


class HiCViewSession(object):
    """
    Owner of the zoom/location view state.

    Every navigation action goes through set_zoom_and_location() or the move_to() clamp; each
    successful transition replaces the ViewState wholesale and moves the view epoch forward.
    The session is Uninitialized (state is None) until the first successful transition.
    """

    def __init__(
        self,
        config: RenderConfig = RenderConfig(),
        dataset: Optional[Dataset] = None,
        control_dataset: Optional[Dataset] = None,
        epoch: Optional[ViewEpoch] = None,
        executor: Optional[LongTaskExecutor] = None,
        block_resolver: Optional[BlockResolver] = None
    ) -> None:
        super().__init__()
        self.config: RenderConfig = config
        self.dataset: Optional[Dataset] = dataset
        self.control_dataset: Optional[Dataset] = control_dataset
        self.epoch: ViewEpoch = epoch if epoch is not None else ViewEpoch()
        self.assembly_state: AssemblyState = AssemblyState(epoch=self.epoch)
        self.executor: Optional[LongTaskExecutor] = executor
        self.block_resolver: BlockResolver = block_resolver if block_resolver is not None else BlockResolver(
            BlockCache(config.block_cache_size))
        self.state: Optional[ViewState] = None
        self.grid_axis_x: Optional[GridAxis] = None
        self.grid_axis_y: Optional[GridAxis] = None
        self.display_option: MatrixType = MatrixType.OBSERVED
        self.obs_normalization: str = NONE_NORMALIZATION
        self.control_normalization: str = NONE_NORMALIZATION
        self.cursor_point: Optional[Tuple[float, float]] = None
        self.user_resolution_locked: bool = False
        self.linked_mode: bool = False
        self.location_listeners: List[Callable[[str], None]] = []
        self.zoom_action_tracker: ZoomActionTracker = ZoomActionTracker(config.history_limit)
        self.expected_cache: ExpectedValueCache = ExpectedValueCache()
        self.control_expected_cache: ExpectedValueCache = ExpectedValueCache()

    def set_dataset(self, dataset: Optional[Dataset]) -> None:
        self.dataset = dataset
        # Scaffold maps are edits of the previous dataset chromosomes
        self.assembly_state.clear()
        self.reset()

    def set_control_dataset(self, control_dataset: Optional[Dataset]) -> None:
        self.control_dataset = control_dataset
        self.control_expected_cache.clear()

    def reset(self) -> None:
        self.state = None
        self.grid_axis_x = None
        self.grid_axis_y = None
        self.cursor_point = None
        self.zoom_action_tracker.clear()
        self.clear_all_data_cache()
        self.epoch.bump()

    def clear_all_data_cache(self) -> None:
        self.block_resolver.block_cache.clear()
        self.expected_cache.clear()
        self.control_expected_cache.clear()

    def is_resolution_locked(self) -> bool:
        return self.user_resolution_locked or (
            self.state is not None
            and self.is_in_pearsons_mode()
            and self.state.zoom.bin_size <= self.config.max_pearson_zoom
        )

    def is_in_pearsons_mode(self) -> bool:
        return MatrixType.is_pearson_type(self.display_option)

    def is_pearson_edge_case_encountered(self, zoom: HiCZoom) -> bool:
        return self.is_in_pearsons_mode() and zoom.bin_size < self.config.max_pearson_zoom

    def is_whole_genome(self) -> bool:
        return self.state is not None and self.state.chromosome_x.is_all_by_all()

    def is_control_loaded(self) -> bool:
        return self.control_dataset is not None

    def set_cursor_point(self, point: Optional[Tuple[float, float]]) -> None:
        """
        Last known mouse position in viewport pixels, used to keep the bin under it while unzooming.
        """
        self.cursor_point = point

    @staticmethod
    def find_zoom_data(
        dataset: Dataset,
        chromosome_x: Chromosome,
        chromosome_y: Chromosome,
        zoom: HiCZoom
    ) -> Optional[MatrixZoomSource]:
        matrix = dataset.get_matrix(chromosome_x, chromosome_y)
        if matrix is None:
            logger.warning(f"Region {chromosome_x.name} x {chromosome_y.name} is not available")
            return None
        if chromosome_x.is_all_by_all():
            zoom_data = matrix.get_first_zoom_data(HiCUnit.BP)
        else:
            zoom_data = matrix.get_zoom_data(zoom)
        if zoom_data is None:
            logger.warning(f"Zoom {zoom} is not available for {chromosome_x.name} x {chromosome_y.name}")
        return zoom_data

    def get_zd(self) -> Optional[MatrixZoomSource]:
        if self.dataset is None or self.state is None:
            return None
        return HiCViewSession.find_zoom_data(
            self.dataset, self.state.chromosome_x, self.state.chromosome_y, self.state.zoom)

    def get_control_zd(self) -> Optional[MatrixZoomSource]:
        if self.control_dataset is None or self.state is None:
            return None
        chromosome_x = self.control_dataset.get_chromosome(self.state.chromosome_x.name)
        chromosome_y = self.control_dataset.get_chromosome(self.state.chromosome_y.name)
        if chromosome_x is None or chromosome_y is None:
            return None
        return HiCViewSession.find_zoom_data(
            self.control_dataset, chromosome_x, chromosome_y, self.state.zoom)

    def view_width_bins(self, scale_factor: float) -> float:
        return self.config.viewport_width_px / scale_factor

    def view_height_bins(self, scale_factor: float) -> float:
        return self.config.viewport_height_px / scale_factor

    def clamped_origin(
        self,
        bin_x: float,
        bin_y: float,
        scale_factor: float,
        grid_axis_x: GridAxis,
        grid_axis_y: GridAxis
    ) -> Tuple[float, float]:
        max_x = grid_axis_x.bin_count - self.view_width_bins(scale_factor)
        max_y = grid_axis_y.bin_count - self.view_height_bins(scale_factor)
        return (
            max(0, min(max_x, bin_x)),
            max(0, min(max_y, bin_y)),
        )

    def centered_origin(
        self,
        bin_x: float,
        bin_y: float,
        scale_factor: float,
        grid_axis_x: GridAxis,
        grid_axis_y: GridAxis
    ) -> Tuple[float, float]:
        return self.clamped_origin(
            int(bin_x - self.view_width_bins(scale_factor) / 2),
            int(bin_y - self.view_height_bins(scale_factor) / 2),
            scale_factor,
            grid_axis_x,
            grid_axis_y
        )

    def standard_unzoom_center(
        self,
        pre_state: ViewState,
        pre_axis_x: GridAxis,
        pre_axis_y: GridAxis,
        grid_axis_x: GridAxis,
        grid_axis_y: GridAxis
    ) -> Tuple[int, int]:
        """
        Bin of the new zoom that lies under the cursor in the previous view.
        """
        mouse_x, mouse_y = self.cursor_point
        pre_center_x = pre_state.bin_origin_x + mouse_x / pre_state.scale_factor
        pre_center_y = pre_state.bin_origin_y + mouse_y / pre_state.scale_factor
        return (
            int(pre_center_x / pre_axis_x.bin_count * grid_axis_x.bin_count),
            int(pre_center_y / pre_axis_y.bin_count * grid_axis_y.bin_count),
        )

    def set_zoom_and_location(
        self,
        chromosome_x_name: str,
        chromosome_y_name: str,
        zoom: HiCZoom,
        genome_x: float,
        genome_y: float,
        scale_factor: float = -1,
        reset_zoom: bool = True,
        call_type: ZoomCallType = ZoomCallType.STANDARD,
        allow_broadcast: bool = True,
        resolution_locked: Optional[bool] = None,
        store_zoom_action: bool = True
    ) -> bool:
        """
        The only transition of the view state: moves the view to chromosome pair, zoom and position.

        :param genome_x: Genomic position of the target, or the bin origin itself for DIRECT calls.
        :param scale_factor: Pixels per bin, non-positive value requests the default fit-to-viewport scale.
        :param resolution_locked: New state of the user resolution lock, None keeps it as is.
        :param store_zoom_action: False when replaying a history entry.
        :return: False if nothing changed because the requested region or zoom is unavailable.
        """
        if self.dataset is None:
            logger.warning("No dataset is loaded")
            return False

        chromosome_x = self.dataset.get_chromosome(chromosome_x_name)
        chromosome_y = self.dataset.get_chromosome(chromosome_y_name)
        if chromosome_x is None or chromosome_y is None:
            # Most probably a location of a different species map
            logger.warning(f"Unknown chromosome pair {chromosome_x_name} x {chromosome_y_name}")
            return False

        if self.is_pearson_edge_case_encountered(zoom) and not chromosome_x.is_all_by_all():
            logger.warning(
                f"Resolution is locked at {self.config.max_pearson_zoom} bp in {self.display_option.name} mode")
            return False

        zoom_data = HiCViewSession.find_zoom_data(self.dataset, chromosome_x, chromosome_y, zoom)
        if zoom_data is None:
            return False

        pre_state = self.state
        pre_axis_x, pre_axis_y = self.grid_axis_x, self.grid_axis_y
        chromosomes_changed = pre_state is None or not (
            pre_state.chromosome_x == chromosome_x and pre_state.chromosome_y == chromosome_y)

        if resolution_locked is not None:
            self.user_resolution_locked = resolution_locked

        grid_axis_x = GridAxis(zoom_data.zoom.bin_size, zoom_data.bin_count_x, chromosome_x.length)
        grid_axis_y = GridAxis(zoom_data.zoom.bin_size, zoom_data.bin_count_y, chromosome_y.length)

        if scale_factor > 0:
            new_scale_factor = constrain_scale_factor(scale_factor)
        else:
            max_bin_count = max(grid_axis_x.bin_count, grid_axis_y.bin_count)
            new_scale_factor = constrain_scale_factor(
                max(1.0, self.config.viewport_min_dimension_px / max_bin_count))

        bin_x = grid_axis_x.bin_number_for_genomic_position(genome_x)
        bin_y = grid_axis_y.bin_number_for_genomic_position(genome_y)

        if call_type in (ZoomCallType.INITIAL, ZoomCallType.STANDARD):
            zooming_out = pre_state is not None and zoom.bin_size > pre_state.zoom.bin_size
            if (
                not store_zoom_action
                and not chromosomes_changed
                and zooming_out
                and self.cursor_point is not None
                and pre_axis_x is not None
            ):
                center_x, center_y = self.standard_unzoom_center(
                    pre_state, pre_axis_x, pre_axis_y, grid_axis_x, grid_axis_y)
            else:
                center_x, center_y = bin_x, bin_y
            origin = self.centered_origin(
                center_x, center_y, new_scale_factor, grid_axis_x, grid_axis_y)
        elif call_type == ZoomCallType.DRAG:
            origin = self.clamped_origin(
                bin_x, bin_y, new_scale_factor, grid_axis_x, grid_axis_y)
        elif call_type == ZoomCallType.DIRECT:
            origin = self.clamped_origin(
                genome_x, genome_y, new_scale_factor, grid_axis_x, grid_axis_y)
        elif pre_state is not None and not chromosomes_changed:
            origin = self.clamped_origin(
                pre_state.bin_origin_x, pre_state.bin_origin_y, new_scale_factor, grid_axis_x, grid_axis_y)
        else:
            origin = self.centered_origin(
                bin_x, bin_y, new_scale_factor, grid_axis_x, grid_axis_y)

        self.state = ViewState(
            chromosome_x=chromosome_x,
            chromosome_y=chromosome_y,
            zoom=zoom_data.zoom if chromosome_x.is_all_by_all() else zoom,
            bin_origin_x=origin[0],
            bin_origin_y=origin[1],
            scale_factor=new_scale_factor,
        )
        self.grid_axis_x = grid_axis_x
        self.grid_axis_y = grid_axis_y
        self.epoch.bump()
        logger.debug(f"View state: {self.get_location_description()}")

        if self.linked_mode and allow_broadcast:
            self.broadcast_location()

        if store_zoom_action:
            self.zoom_action_tracker.add_if_new(ZoomAction(
                chromosome_x=chromosome_x_name,
                chromosome_y=chromosome_y_name,
                zoom=zoom,
                genome_x=genome_x,
                genome_y=genome_y,
                scale_factor=scale_factor,
                reset_zoom=reset_zoom,
                call_type=call_type,
                resolution_locked=resolution_locked,
            ))
        return True

    def replay(self, action: Optional[ZoomAction]) -> bool:
        if action is None:
            return False
        return self.set_zoom_and_location(
            action.chromosome_x,
            action.chromosome_y,
            action.zoom,
            action.genome_x,
            action.genome_y,
            action.scale_factor,
            action.reset_zoom,
            action.call_type,
            allow_broadcast=True,
            resolution_locked=action.resolution_locked,
            store_zoom_action=False
        )

    def undo_zoom_action(self) -> bool:
        """
        Call set_cursor_point() with the last known mouse position before undoing.
        """
        if not self.replay(self.zoom_action_tracker.peek_undo()):
            return False
        self.zoom_action_tracker.undo_zoom()
        return True

    def redo_zoom_action(self) -> bool:
        # History cursor follows the screen: it moves only after a successful replay
        if not self.replay(self.zoom_action_tracker.peek_redo()):
            return False
        self.zoom_action_tracker.redo_zoom()
        return True

    def can_undo(self) -> bool:
        return self.zoom_action_tracker.can_undo()

    def can_redo(self) -> bool:
        return self.zoom_action_tracker.can_redo()

    def move_to(self, new_bin_x: float, new_bin_y: float) -> bool:
        if self.state is None:
            return False
        x, y = self.clamped_origin(
            new_bin_x, new_bin_y, self.state.scale_factor, self.grid_axis_x, self.grid_axis_y)
        self.state = self.state._replace(bin_origin_x=x, bin_origin_y=y)
        self.epoch.bump()
        if self.linked_mode:
            self.broadcast_location()
        return True

    def move_by(self, dx_bins: float, dy_bins: float) -> bool:
        if self.state is None:
            return False
        return self.move_to(self.state.bin_origin_x + dx_bins, self.state.bin_origin_y + dy_bins)

    def center(self, bin_x: float, bin_y: float) -> bool:
        if self.state is None:
            return False
        return self.move_to(
            int(bin_x - self.view_width_bins(self.state.scale_factor) / 2),
            int(bin_y - self.view_height_bins(self.state.scale_factor) / 2)
        )

    def center_bp(self, bp_x: int, bp_y: int) -> bool:
        if self.state is None:
            return False
        return self.center(
            self.grid_axis_x.bin_number_for_genomic_position(bp_x),
            self.grid_axis_y.bin_number_for_genomic_position(bp_y)
        )

    def zoom_to_drawn_box(self, x_bp: int, y_bp: int, target_bin_size: float) -> bool:
        """
        Drag-zoom into a box: the finest zoom that is not finer than target_bin_size.
        """
        if self.state is None:
            return False
        new_zoom = self.state.zoom
        if not self.is_resolution_locked():
            zooms = self.dataset.get_zooms(self.state.zoom.unit)
            for zoom in reversed(zooms):
                if zoom.bin_size >= target_bin_size:
                    new_zoom = zoom
                    break
            # Derived matrices are not computed below the floor resolution
            if self.is_pearson_edge_case_encountered(new_zoom):
                for zoom in reversed(zooms):
                    if zoom.bin_size >= self.config.max_pearson_zoom:
                        new_zoom = zoom
                        break
        return self.set_zoom_and_location(
            self.state.chromosome_x.name,
            self.state.chromosome_y.name,
            new_zoom,
            x_bp,
            y_bp,
            new_zoom.bin_size / target_bin_size,
            reset_zoom=False,
            call_type=ZoomCallType.DRAG
        )

    def set_location(
        self,
        chromosome_x_name: str,
        chromosome_y_name: str,
        unit: HiCUnit,
        bin_size: int,
        x_origin: float,
        y_origin: float,
        scale_factor: float,
        call_type: ZoomCallType = ZoomCallType.DIRECT,
        allow_broadcast: bool = True
    ) -> bool:
        """
        Entry point of syncs and goto; keeps the current zoom if the bin size is unchanged.
        """
        new_zoom = HiCZoom(unit, bin_size)
        if self.state is not None and self.state.zoom.bin_size == bin_size:
            new_zoom = self.state.zoom
        return self.set_zoom_and_location(
            chromosome_x_name,
            chromosome_y_name,
            new_zoom,
            int(x_origin),
            int(y_origin),
            scale_factor,
            reset_zoom=True,
            call_type=call_type,
            allow_broadcast=allow_broadcast,
            resolution_locked=self.is_resolution_locked(),
            store_zoom_action=True
        )

    def restore_location(self, command: str) -> bool:
        """
        Applies a location produced by get_location_description().
        """
        tokens = command.split()
        if len(tokens) != 8 or tokens[0].lower() != 'setlocation':
            logger.warning(f"Cannot restore location from: {command}")
            return False
        _, chromosome_x, chromosome_y, unit, bin_size, x_origin, y_origin, scale_factor = tokens
        if unit not in HiCUnit.__members__:
            logger.warning(f"Unknown unit {unit}")
            return False
        return self.set_location(
            chromosome_x,
            chromosome_y,
            HiCUnit[unit],
            int(bin_size),
            float(x_origin),
            float(y_origin),
            float(scale_factor),
            call_type=ZoomCallType.DIRECT,
            allow_broadcast=False
        )

    def get_location_description(self) -> str:
        s = self.state
        return f"setlocation {s.chromosome_x.name} {s.chromosome_y.name} {s.zoom.unit.name} {s.zoom.bin_size} {s.bin_origin_x} {s.bin_origin_y} {s.scale_factor}"

    def get_default_location_description(self) -> str:
        s = self.state
        return f"{s.chromosome_x.name}@{int(s.bin_origin_x * s.zoom.bin_size)}_{s.chromosome_y.name}@{int(s.bin_origin_y * s.zoom.bin_size)}"

    def get_current_region_window_genomic_positions(self) -> Tuple[int, int, int, int]:
        s = self.state
        x_start = int(s.bin_origin_x * s.zoom.bin_size)
        y_start = int(s.bin_origin_y * s.zoom.bin_size)
        x_end = x_start + int(s.zoom.bin_size * self.config.viewport_width_px / s.scale_factor)
        if x_end < 0 or x_end > s.chromosome_x.length:
            x_end = s.chromosome_x.length
        y_end = y_start + int(s.zoom.bin_size * self.config.viewport_height_px / s.scale_factor)
        if y_end < 0 or y_end > s.chromosome_y.length:
            y_end = s.chromosome_y.length
        return x_start, x_end, y_start, y_end

    def set_linked_mode(self, linked_mode: bool) -> None:
        self.linked_mode = linked_mode

    def add_location_listener(self, listener: Callable[[str], None]) -> None:
        self.location_listeners.append(listener)

    def broadcast_location(self) -> None:
        if self.state is None:
            return
        command = self.get_location_description()
        for listener in self.location_listeners:
            listener(command)

    def set_display_option(self, display_option: MatrixType) -> None:
        if self.display_option != display_option:
            self.display_option = display_option
            logger.info(f"Display option set to {display_option.name}")

    @staticmethod
    def find_normalization(dataset: Optional[Dataset], label: str) -> str:
        if label.lower() == NONE_NORMALIZATION.lower():
            return NONE_NORMALIZATION
        if dataset is not None:
            for n in dataset.normalization_types:
                if n.lower() == label.lower():
                    return n
        raise DataUnavailableError(f"Normalization {label} is not available")

    def set_obs_normalization(self, label: str) -> None:
        normalization = HiCViewSession.find_normalization(self.dataset, label)
        if self.obs_normalization != normalization:
            self.obs_normalization = normalization
            self.expected_cache.clear()

    def set_control_normalization(self, label: str) -> None:
        normalization = HiCViewSession.find_normalization(self.control_dataset, label)
        if self.control_normalization != normalization:
            self.control_normalization = normalization
            self.control_expected_cache.clear()

    def get_expected_values(self, control: bool = False) -> Optional[LogExpectedSpline]:
        """
        Distance-decay curve of the displayed chromosome at the displayed bin size, built on first use.
        """
        if self.state is None:
            return None
        if control:
            zoom_data, cache, normalization = self.get_control_zd(), self.control_expected_cache, self.control_normalization
        else:
            zoom_data, cache, normalization = self.get_zd(), self.expected_cache, self.obs_normalization
        if zoom_data is None:
            return None
        chromosome = self.state.chromosome_x
        bin_size = zoom_data.zoom.bin_size
        if self.executor is not None:
            return self.executor.execute_long_running_task(
                cache.get_or_build,
                f"Calculating expected values of {chromosome.name}",
                zoom_data, chromosome, bin_size, normalization
            )
        return cache.get_or_build(zoom_data, chromosome, bin_size, normalization)

    def get_normalized_observed_value(self, bin_x: int, bin_y: int, control: bool = False) -> float:
        if self.state is None:
            return float('nan')
        dataset = self.control_dataset if control else self.dataset
        normalization = self.control_normalization if control else self.obs_normalization
        if dataset is None:
            return float('nan')
        chromosome_x = dataset.get_chromosome(self.state.chromosome_x.name)
        chromosome_y = dataset.get_chromosome(self.state.chromosome_y.name)
        if chromosome_x is None or chromosome_y is None:
            return float('nan')
        return self.block_resolver.get_observed_value(
            dataset, chromosome_x, chromosome_y, self.state.zoom, bin_x, bin_y, normalization, self.config)

    def get_scaffold_maps(self) -> Tuple[ScaffoldMap, ScaffoldMap]:
        return (
            self.assembly_state.get_scaffold_map(self.state.chromosome_x),
            self.assembly_state.get_scaffold_map(self.state.chromosome_y),
        )

    def get_visible_bin_rectangle(self) -> Tuple[int, int, int, int]:
        """
        Current-space bins (x1, x2, y1, y2) covered by the viewport.
        """
        s = self.state
        return (
            int(s.bin_origin_x),
            int(s.bin_origin_x + self.view_width_bins(s.scale_factor)) + 1,
            int(s.bin_origin_y),
            int(s.bin_origin_y + self.view_height_bins(s.scale_factor)) + 1,
        )
