import itertools
import logging
import threading
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple, Union

from readerwriterlock import rwlock

from hilift.core.common import Chromosome, MalformedAssemblyError
from hilift.core.scaffold_map import ScaffoldMap, ScaffoldSegment
from hilift.core.scaffold_tree import ScaffoldTree
from hilift.util.persistence.counter import ViewEpoch

logger = logging.getLogger(__name__)


class AssemblyState(object):
    """
    Active scaffold map of every chromosome and the editing operations producing new ones.

    An edit is applied to a copy of the assembly order and installed only if the resulting map is
    valid, otherwise the previous map stays active and MalformedAssemblyError is raised.
    """

    def __init__(self, epoch: Optional[ViewEpoch] = None, random_seed: Optional[int] = None) -> None:
        super().__init__()
        self.epoch: ViewEpoch = epoch if epoch is not None else ViewEpoch()
        self.random_seed: Optional[int] = random_seed
        self.scaffold_maps: Dict[str, ScaffoldMap] = dict()
        self.trees: Dict[str, ScaffoldTree] = dict()
        self.group_ids = itertools.count(1)
        self.lock: rwlock.RWLockWrite = rwlock.RWLockWrite(lock_factory=threading.RLock)

    def clear(self) -> None:
        with self.lock.gen_wlock():
            self.scaffold_maps.clear()
            self.trees.clear()
        self.epoch.bump()

    def get_scaffold_map(self, chromosome: Chromosome) -> ScaffoldMap:
        """
        Active map of chromosome, the identity map if it was never edited.
        """
        with self.lock.gen_rlock():
            scaffold_map = self.scaffold_maps.get(chromosome.name)
        if scaffold_map is None or scaffold_map.chromosome_length != chromosome.length:
            return ScaffoldMap.identity(chromosome.length, chromosome.name)
        return scaffold_map

    def install_scaffold_map(
        self,
        chromosome: Chromosome,
        segments: Union[ScaffoldMap, Iterable[ScaffoldSegment]]
    ) -> ScaffoldMap:
        if isinstance(segments, ScaffoldMap):
            candidate = segments
        else:
            candidate = ScaffoldMap(chromosome.length, segments)
        if candidate.chromosome_length != chromosome.length:
            raise MalformedAssemblyError(
                f"Assembly covers {candidate.chromosome_length} bp but {chromosome.name} is {chromosome.length} bp long")
        with self.lock.gen_wlock():
            self.scaffold_maps[chromosome.name] = candidate
            self.trees[chromosome.name] = ScaffoldTree.from_scaffold_map(
                candidate, random_seed=self.random_seed)
        self.epoch.bump()
        logger.info(f"Installed assembly of {chromosome.name} with {len(candidate)} segment(s)")
        return candidate

    def import_assembly(
        self,
        chromosome: Chromosome,
        original_layout: Sequence[Tuple[str, int]],
        current_order: Sequence[Tuple[str, bool]]
    ) -> ScaffoldMap:
        return self.install_scaffold_map(
            chromosome, ScaffoldMap.from_lengths(original_layout, current_order))

    def reset_assembly(self, chromosome: Chromosome) -> ScaffoldMap:
        return self.install_scaffold_map(
            chromosome, ScaffoldMap.identity(chromosome.length, chromosome.name))

    def get_tree(self, chromosome: Chromosome) -> ScaffoldTree:
        with self.lock.gen_wlock():
            if chromosome.name not in self.trees:
                self.trees[chromosome.name] = ScaffoldTree.from_scaffold_map(
                    self.get_scaffold_map(chromosome), random_seed=self.random_seed)
            return self.trees[chromosome.name]

    def apply_edit(
        self,
        chromosome: Chromosome,
        edit: Callable[[ScaffoldTree], None],
        description: str
    ) -> ScaffoldMap:
        tree = self.get_tree(chromosome)
        with self.lock.gen_wlock():
            previous_root = tree.root
            try:
                edit(tree)
                candidate = tree.build_scaffold_map()
            except MalformedAssemblyError:
                tree.root = previous_root
                logger.warning(f"Rejected {description} of {chromosome.name}, previous assembly is kept")
                raise
            if candidate.chromosome_length != chromosome.length:
                tree.root = previous_root
                raise MalformedAssemblyError(
                    f"Edited assembly covers {candidate.chromosome_length} bp but {chromosome.name} is {chromosome.length} bp long")
            self.scaffold_maps[chromosome.name] = candidate
        self.epoch.bump()
        logger.info(f"Applied {description} to {chromosome.name}")
        return candidate

    @staticmethod
    def check_selection(tree: ScaffoldTree, start_index: int, end_index: int, target_index: Optional[int] = None) -> None:
        segment_count = len(tree.get_segment_list())
        if not (0 <= start_index <= end_index < segment_count):
            raise MalformedAssemblyError(
                f"Selection [{start_index}, {end_index}] is outside of {segment_count} segment(s)")
        # Target is an index among the segments left after taking the selection out
        if target_index is not None and not (0 <= target_index <= segment_count - (end_index - start_index + 1)):
            raise MalformedAssemblyError(
                f"Target {target_index} is outside of the {segment_count - (end_index - start_index + 1)} remaining segment(s)")

    def reverse_selection_range(self, chromosome: Chromosome, start_index: int, end_index: int) -> ScaffoldMap:
        """
        Inverts segments [start_index, end_index] (extended to whole groups) as one block.
        """
        def edit(tree: ScaffoldTree) -> None:
            AssemblyState.check_selection(tree, start_index, end_index)
            s, e = tree.extend_to_groups(start_index, end_index)
            tree.reverse_segments_in_range(s, e)

        return self.apply_edit(chromosome, edit, f"inversion of [{start_index}, {end_index}]")

    def move_selection_range(
        self,
        chromosome: Chromosome,
        start_index: int,
        end_index: int,
        target_index: int
    ) -> ScaffoldMap:
        def edit(tree: ScaffoldTree) -> None:
            AssemblyState.check_selection(tree, start_index, end_index, target_index)
            s, e = tree.extend_to_groups(start_index, end_index)
            tree.move_segments_in_range(s, e, tree.snap_target_to_groups(s, e, target_index))

        return self.apply_edit(
            chromosome, edit, f"move of [{start_index}, {end_index}] to {target_index}")

    def group_segments(self, chromosome: Chromosome, start_index: int, end_index: int) -> ScaffoldMap:
        group_id = next(self.group_ids)

        def edit(tree: ScaffoldTree) -> None:
            AssemblyState.check_selection(tree, start_index, end_index)
            s, e = tree.extend_to_groups(start_index, end_index)
            tree.set_group_in_range(s, e, group_id)

        return self.apply_edit(
            chromosome, edit, f"grouping of [{start_index}, {end_index}]")

    def ungroup_segments(self, chromosome: Chromosome, start_index: int, end_index: int) -> ScaffoldMap:
        def edit(tree: ScaffoldTree) -> None:
            AssemblyState.check_selection(tree, start_index, end_index)
            s, e = tree.extend_to_groups(start_index, end_index)
            tree.set_group_in_range(s, e, None)

        return self.apply_edit(
            chromosome, edit, f"ungrouping of [{start_index}, {end_index}]")
