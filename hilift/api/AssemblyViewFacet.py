from typing import Iterable, List, Optional, Sequence, Tuple

from hilift.core.block_cache import BlockCache
from hilift.core.block_resolver import BlockResolver, EpochGuardedResult
from hilift.core.common import (Block, BlockLoadingError, DataUnavailableError,
                                ExpectedValueUnavailableError, HiCUnit,
                                HiCZoom, MalformedAssemblyError, RenderConfig,
                                ZoomCallType)
from hilift.core.contact_store import Dataset, TrackSource
from hilift.core.data_points import DataPoint, FeatureInterval
from hilift.core.expected_spline import LogExpectedSpline
from hilift.core.scaffold_map import ScaffoldMap
from hilift.core.view_state import HiCViewSession, ViewState
from hilift.util.long_task import LongTaskExecutor


class AssemblyViewFacet(object):
    """
    This facet is designed to be the main API object to interact with the view and assembly model without using the model methods directly.
    """

    class IncorrectSessionStateError(Exception):
        """
        General exception that indicates no dataset is loaded or the view was never positioned.
        """
        pass

    UnavailableRegionError = DataUnavailableError
    BlockLoadingError = BlockLoadingError
    MalformedAssemblyError = MalformedAssemblyError
    ExpectedValueUnavailableError = ExpectedValueUnavailableError

    @staticmethod
    def get_session(
        dataset: Optional[Dataset] = None,
        config: RenderConfig = RenderConfig(),
        control_dataset: Optional[Dataset] = None
    ) -> HiCViewSession:
        """
        Create a view session with its own block cache and long task executor.

        :param dataset: Observed contact data, may be set later with open_dataset().
        :param config: Display flags shared by every query of this session.
        :param control_dataset: Optional control contact data.
        :return: Session in Uninitialized state.
        """
        return HiCViewSession(
            config=config,
            dataset=dataset,
            control_dataset=control_dataset,
            executor=LongTaskExecutor(config.multithreading_pool_size),
            block_resolver=BlockResolver(BlockCache(config.block_cache_size)),
        )

    @staticmethod
    def close_session(s: HiCViewSession) -> None:
        if s.executor is not None:
            s.executor.shutdown(wait=True)

    @staticmethod
    def open_dataset(s: HiCViewSession, dataset: Dataset, control_dataset: Optional[Dataset] = None) -> None:
        """
        Replace displayed data. View state, history and caches are reset.
        """
        s.set_dataset(dataset)
        s.set_control_dataset(control_dataset)

    @staticmethod
    def check_positioned(s: HiCViewSession) -> ViewState:
        if s.dataset is None or s.state is None:
            raise AssemblyViewFacet.IncorrectSessionStateError()
        return s.state

    @staticmethod
    def go_to(
        s: HiCViewSession,
        chromosome_x: str,
        chromosome_y: str,
        bin_size: int,
        genome_x: int,
        genome_y: int,
        scale_factor: float = -1,
        call_type: ZoomCallType = ZoomCallType.STANDARD,
        unit: HiCUnit = HiCUnit.BP
    ) -> bool:
        """
        Move the view to a chromosome pair and zoom, recording the move for undo.

        :return: False if the region or zoom is not available, view is left as is.
        """
        if s.dataset is None:
            raise AssemblyViewFacet.IncorrectSessionStateError()
        return s.set_zoom_and_location(
            chromosome_x,
            chromosome_y,
            HiCZoom(unit, bin_size),
            genome_x,
            genome_y,
            scale_factor,
            reset_zoom=True,
            call_type=call_type,
        )

    @staticmethod
    def undo(s: HiCViewSession) -> bool:
        return s.undo_zoom_action()

    @staticmethod
    def redo(s: HiCViewSession) -> bool:
        return s.redo_zoom_action()

    @staticmethod
    def get_view_state(s: HiCViewSession) -> ViewState:
        return AssemblyViewFacet.check_positioned(s)

    @staticmethod
    def get_blocks_in_view(
        s: HiCViewSession,
        bin_rectangle: Optional[Tuple[int, int, int, int]] = None,
        control: bool = False
    ) -> List[Block]:
        """
        Blocks needed to draw current viewport (or the given current-space bin rectangle).

        :param bin_rectangle: (x1, x2, y1, y2) bins of the current assembly, defaults to the visible ones.
        :param control: Query the control dataset instead of the observed one.
        """
        state = AssemblyViewFacet.check_positioned(s)
        args = AssemblyViewFacet.resolve_arguments(s, state, bin_rectangle, control)
        return s.executor.execute_long_running_task(
            s.block_resolver.resolve_blocks, 'Loading blocks', *args)

    @staticmethod
    def get_blocks_in_view_async(
        s: HiCViewSession,
        bin_rectangle: Optional[Tuple[int, int, int, int]] = None,
        control: bool = False
    ) -> EpochGuardedResult:
        """
        Same as get_blocks_in_view() but in background; the result turns stale once the view or
        assembly changes.
        """
        state = AssemblyViewFacet.check_positioned(s)
        args = AssemblyViewFacet.resolve_arguments(s, state, bin_rectangle, control)
        return s.block_resolver.resolve_blocks_async(s.executor, s.epoch, *args)

    @staticmethod
    def resolve_arguments(
        s: HiCViewSession,
        state: ViewState,
        bin_rectangle: Optional[Tuple[int, int, int, int]],
        control: bool
    ) -> tuple:
        dataset = s.control_dataset if control else s.dataset
        normalization = s.control_normalization if control else s.obs_normalization
        x1, x2, y1, y2 = bin_rectangle if bin_rectangle is not None else s.get_visible_bin_rectangle()
        scaffold_map_x, scaffold_map_y = s.get_scaffold_maps()
        return (
            dataset,
            state.chromosome_x,
            state.chromosome_y,
            state.zoom,
            x1,
            x2,
            y1,
            y2,
            normalization,
            scaffold_map_x,
            scaffold_map_y,
            s.config,
        )

    @staticmethod
    def lift_track(
        s: HiCViewSession,
        source: TrackSource,
        bin_x1: Optional[int] = None,
        bin_x2: Optional[int] = None
    ) -> List[DataPoint]:
        state = AssemblyViewFacet.check_positioned(s)
        x1, x2, _, _ = s.get_visible_bin_rectangle()
        return BlockResolver.lift_data_points(
            state.chromosome_x,
            x1 if bin_x1 is None else bin_x1,
            x2 if bin_x2 is None else bin_x2,
            state.zoom,
            source,
            s.assembly_state.get_scaffold_map(state.chromosome_x),
            s.config
        )

    @staticmethod
    def lift_features(
        s: HiCViewSession,
        features: Iterable[FeatureInterval],
        bin_x1: Optional[int] = None,
        bin_x2: Optional[int] = None
    ) -> List[FeatureInterval]:
        state = AssemblyViewFacet.check_positioned(s)
        x1, x2, _, _ = s.get_visible_bin_rectangle()
        return BlockResolver.lift_features(
            state.chromosome_x,
            x1 if bin_x1 is None else bin_x1,
            x2 if bin_x2 is None else bin_x2,
            state.zoom,
            features,
            s.assembly_state.get_scaffold_map(state.chromosome_x),
            s.config
        )

    @staticmethod
    def get_observed_value(s: HiCViewSession, bin_x: int, bin_y: int, control: bool = False) -> float:
        AssemblyViewFacet.check_positioned(s)
        return s.get_normalized_observed_value(bin_x, bin_y, control)

    @staticmethod
    def get_expected_values(s: HiCViewSession, control: bool = False) -> Optional[LogExpectedSpline]:
        AssemblyViewFacet.check_positioned(s)
        return s.get_expected_values(control)

    @staticmethod
    def get_scaffold_map(s: HiCViewSession, chromosome_name: str) -> ScaffoldMap:
        return s.assembly_state.get_scaffold_map(AssemblyViewFacet.find_chromosome(s, chromosome_name))

    @staticmethod
    def find_chromosome(s: HiCViewSession, chromosome_name: str):
        if s.dataset is None:
            raise AssemblyViewFacet.IncorrectSessionStateError()
        chromosome = s.dataset.get_chromosome(chromosome_name)
        if chromosome is None:
            raise AssemblyViewFacet.UnavailableRegionError(f"Unknown chromosome {chromosome_name}")
        return chromosome

    @staticmethod
    def import_assembly(
        s: HiCViewSession,
        chromosome_name: str,
        original_layout: Sequence[Tuple[str, int]],
        current_order: Sequence[Tuple[str, bool]]
    ) -> ScaffoldMap:
        """
        Install an already parsed assembly: reference scaffolds (name, length) and their edited
        order (name, inverted). Malformed assemblies are rejected and the previous one is kept.
        """
        return s.assembly_state.import_assembly(
            AssemblyViewFacet.find_chromosome(s, chromosome_name), original_layout, current_order)

    @staticmethod
    def reverse_selection_range(s: HiCViewSession, chromosome_name: str, start_index: int, end_index: int) -> ScaffoldMap:
        return s.assembly_state.reverse_selection_range(
            AssemblyViewFacet.find_chromosome(s, chromosome_name), start_index, end_index)

    @staticmethod
    def move_selection_range(
        s: HiCViewSession,
        chromosome_name: str,
        start_index: int,
        end_index: int,
        target_index: int
    ) -> ScaffoldMap:
        return s.assembly_state.move_selection_range(
            AssemblyViewFacet.find_chromosome(s, chromosome_name), start_index, end_index, target_index)

    @staticmethod
    def group_segments(s: HiCViewSession, chromosome_name: str, start_index: int, end_index: int) -> ScaffoldMap:
        return s.assembly_state.group_segments(
            AssemblyViewFacet.find_chromosome(s, chromosome_name), start_index, end_index)

    @staticmethod
    def ungroup_segments(s: HiCViewSession, chromosome_name: str, start_index: int, end_index: int) -> ScaffoldMap:
        return s.assembly_state.ungroup_segments(
            AssemblyViewFacet.find_chromosome(s, chromosome_name), start_index, end_index)

    @staticmethod
    def clear_caches(s: HiCViewSession) -> None:
        s.clear_all_data_cache()
