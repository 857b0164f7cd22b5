import random
import sys
import threading
from typing import Callable, List, NamedTuple, Optional, Tuple

import numpy as np
from readerwriterlock import rwlock

from hilift.core.common import ScaffoldDirection, constrain_coordinate
from hilift.core.scaffold_map import ScaffoldMap, ScaffoldSegment


class SegmentDescriptor(NamedTuple):
    """
    Original-space extent of a segment, fixed for the whole editing session.
    """
    segment_id: int
    name: str
    original_start: int
    original_end: int

    @property
    def length(self) -> int:
        return self.original_end - self.original_start


class ScaffoldTree:
    """
    Persistent treap keeping segments of one chromosome in assembly order.
    Implicit keys are segment count and length in base pairs; inversion of a subtree is a lazy flag.
    """

    class ExposedSegment(NamedTuple):
        less: Optional['ScaffoldTree.Node']
        segment: Optional['ScaffoldTree.Node']
        greater: Optional['ScaffoldTree.Node']

    class Node:
        segment_descriptor: SegmentDescriptor
        y_priority: np.int64
        left: Optional['ScaffoldTree.Node']
        right: Optional['ScaffoldTree.Node']
        subtree_count: np.int64
        subtree_length_bp: np.int64
        needs_changing_direction: bool
        direction: ScaffoldDirection
        group_id: Optional[int]

        def __init__(
            self,
            segment_descriptor: SegmentDescriptor,
            subtree_count: np.int64,
            subtree_length_bp: np.int64,
            y_priority: np.int64,
            left: Optional['ScaffoldTree.Node'],
            right: Optional['ScaffoldTree.Node'],
            needs_changing_direction: bool,
            direction: ScaffoldDirection,
            group_id: Optional[int],
        ) -> None:
            super().__init__()
            self.segment_descriptor: SegmentDescriptor = segment_descriptor
            self.y_priority: np.int64 = y_priority
            self.left: Optional['ScaffoldTree.Node'] = left
            self.right: Optional['ScaffoldTree.Node'] = right
            self.subtree_count: np.int64 = subtree_count
            self.subtree_length_bp: np.int64 = subtree_length_bp
            self.needs_changing_direction: bool = needs_changing_direction
            self.direction: ScaffoldDirection = direction
            self.group_id: Optional[int] = group_id

        @staticmethod
        def make_new_node_from_descriptor(
            segment_descriptor: SegmentDescriptor,
            direction: ScaffoldDirection,
            group_id: Optional[int] = None,
        ) -> 'ScaffoldTree.Node':
            return ScaffoldTree.Node(
                segment_descriptor=segment_descriptor,
                y_priority=np.int64(
                    random.randint(1 - sys.maxsize, sys.maxsize - 1)),
                left=None,
                right=None,
                subtree_count=np.int64(1),
                subtree_length_bp=np.int64(segment_descriptor.length),
                needs_changing_direction=False,
                direction=direction,
                group_id=group_id,
            )

        @staticmethod
        def clone_node(n: 'ScaffoldTree.Node') -> 'ScaffoldTree.Node':
            return ScaffoldTree.Node(
                segment_descriptor=n.segment_descriptor,
                subtree_count=n.subtree_count,
                subtree_length_bp=n.subtree_length_bp,
                left=n.left,
                right=n.right,
                needs_changing_direction=n.needs_changing_direction,
                y_priority=n.y_priority,
                direction=n.direction,
                group_id=n.group_id,
            )

        def clone(self) -> 'ScaffoldTree.Node':
            return ScaffoldTree.Node.clone_node(self)

        def update_sizes(self) -> 'ScaffoldTree.Node':
            new_node = self.clone()
            new_node.subtree_count = np.int64(1)
            new_node.subtree_length_bp = np.int64(
                new_node.segment_descriptor.length)
            if new_node.left is not None:
                new_node.subtree_count += new_node.left.subtree_count
                new_node.subtree_length_bp += new_node.left.subtree_length_bp
            if new_node.right is not None:
                new_node.subtree_count += new_node.right.subtree_count
                new_node.subtree_length_bp += new_node.right.subtree_length_bp
            return new_node

        def push(self) -> 'ScaffoldTree.Node':
            new_node = self.clone()
            if new_node.needs_changing_direction:
                (new_node.left, new_node.right) = (
                    new_node.right, new_node.left)
                if new_node.left is not None:
                    new_node.left = new_node.left.clone()
                    new_node.left.needs_changing_direction = not new_node.left.needs_changing_direction
                if new_node.right is not None:
                    new_node.right = new_node.right.clone()
                    new_node.right.needs_changing_direction = not new_node.right.needs_changing_direction
                new_node.direction = ScaffoldDirection(
                    1 - new_node.direction.value)
                new_node.needs_changing_direction = False
            return new_node

        @staticmethod
        def merge_nodes(t1: Optional['ScaffoldTree.Node'], t2: Optional['ScaffoldTree.Node']) -> Optional['ScaffoldTree.Node']:
            if t1 is None:
                return t2
            if t2 is None:
                return t1
            if t1.y_priority > t2.y_priority:
                new_t1 = t1.push()
                new_t1.right = ScaffoldTree.Node.merge_nodes(new_t1.right, t2)
                return new_t1.update_sizes()
            else:
                new_t2 = t2.push()
                new_t2.left = ScaffoldTree.Node.merge_nodes(t1, new_t2.left)
                return new_t2.update_sizes()

    root: Optional[Node] = None

    root_lock: rwlock.RWLockWrite

    def __init__(
        self,
        random_seed: Optional[int] = None,
    ) -> None:
        super().__init__()
        if random_seed is not None:
            random.seed(random_seed)
        self.root = None
        self.root_lock = rwlock.RWLockWrite(lock_factory=threading.RLock)

    @staticmethod
    def from_scaffold_map(scaffold_map: ScaffoldMap, random_seed: Optional[int] = None) -> 'ScaffoldTree':
        tree = ScaffoldTree(random_seed=random_seed)
        for i, s in enumerate(scaffold_map.segments):
            tree.insert_at_position(
                SegmentDescriptor(s.segment_id, s.name,
                                  s.original_start, s.original_end),
                i,
                ScaffoldDirection.REVERSED if s.inverted else ScaffoldDirection.FORWARD,
                group_id=s.group_id,
            )
        return tree

    def split_node_by_count(self, t: Optional[Node], k: np.int64) -> Tuple[Optional[Node], Optional[Node]]:
        """
        Splits t into (l, r) so that l holds first k segments.
        """
        if t is None:
            return None, None
        new_t = t.push()
        left_count: np.int64 = new_t.left.subtree_count if new_t.left is not None else 0
        if left_count >= k:
            (t1, t2) = self.split_node_by_count(new_t.left, k)
            new_t.left = t2
            new_t = new_t.update_sizes()
            return t1, new_t
        else:
            (t1, t2) = self.split_node_by_count(
                new_t.right, k - left_count - 1)
            new_t.right = t1
            new_t = new_t.update_sizes()
            return new_t, t2

    def merge_nodes(self, t1: Optional[Node], t2: Optional[Node]) -> Optional[Node]:
        return ScaffoldTree.Node.merge_nodes(t1, t2)

    def insert_at_position(
        self,
        segment_descriptor: SegmentDescriptor,
        index: np.int64,
        direction: ScaffoldDirection,
        group_id: Optional[int] = None,
    ) -> None:
        new_node: ScaffoldTree.Node = ScaffoldTree.Node.make_new_node_from_descriptor(
            segment_descriptor,
            direction=direction,
            group_id=group_id,
        )
        with self.root_lock.gen_wlock():
            if self.root is not None:
                (l, r) = self.split_node_by_count(self.root, index)
                new_l: ScaffoldTree.Node = self.merge_nodes(l, new_node)
                self.root = self.merge_nodes(new_l, r)
            else:
                self.root = new_node

    def get_node_count(self) -> np.int64:
        with self.root_lock.gen_rlock():
            return self.root.subtree_count if self.root is not None else np.int64(0)

    def get_length_bp(self) -> np.int64:
        with self.root_lock.gen_rlock():
            return self.root.subtree_length_bp if self.root is not None else np.int64(0)

    def get_index_at_position(self, position_bp: np.int64) -> np.int64:
        """
        Index of the segment covering current position position_bp.
        """
        with self.root_lock.gen_rlock():
            t = self.root
            index: np.int64 = np.int64(0)
            position_bp = constrain_coordinate(
                position_bp, 0, max(0, self.get_length_bp() - 1))
            while t is not None:
                t = t.push()
                left_length = t.left.subtree_length_bp if t.left is not None else 0
                left_count = t.left.subtree_count if t.left is not None else 0
                if position_bp < left_length:
                    t = t.left
                elif position_bp < left_length + t.segment_descriptor.length:
                    return index + left_count
                else:
                    position_bp -= left_length + t.segment_descriptor.length
                    index += left_count + 1
                    t = t.right
            return index

    def expose_segment_by_count(self, start_count: np.int64, end_count: np.int64) -> ExposedSegment:
        """
        Exposes segments in assembly order from start_count to end_count (both inclusive).
        """
        with self.root_lock.gen_rlock():
            (t_le, t_gr) = self.split_node_by_count(self.root, 1 + end_count)
            (t_l, t_seg) = self.split_node_by_count(t_le, start_count)
            return ScaffoldTree.ExposedSegment(t_l, t_seg, t_gr)

    def commit_exposed_segment(self, segm: ExposedSegment) -> None:
        with self.root_lock.gen_wlock():
            (t_l, t_seg, t_gr) = segm
            t_le = self.merge_nodes(t_l, t_seg)
            self.root = self.merge_nodes(t_le, t_gr)

    def reverse_segments_in_range(self, start_index: np.int64, end_index: np.int64) -> None:
        """
        Reverses order and direction of segments between two indices (both inclusive).
        """
        with self.root_lock.gen_wlock():
            (t_l, t_seg, t_gr) = self.expose_segment_by_count(
                start_index, end_index)
            if t_seg is not None:
                t_seg = t_seg.clone()
                t_seg.needs_changing_direction = not t_seg.needs_changing_direction
                t_seg = t_seg.push()
                self.commit_exposed_segment(
                    ScaffoldTree.ExposedSegment(t_l, t_seg, t_gr))

    def move_segments_in_range(self, start_index: np.int64, end_index: np.int64, target_index: np.int64) -> None:
        """
        Moves segments [start_index, end_index] so that the first of them gets target_index,
        where target_index counts positions among the remaining segments.
        """
        with self.root_lock.gen_wlock():
            (t_l, t_seg, t_gr) = self.expose_segment_by_count(
                start_index, end_index)
            rest = self.merge_nodes(t_l, t_gr)
            rest_count = rest.subtree_count if rest is not None else 0
            (r_l, r_gr) = self.split_node_by_count(
                rest, constrain_coordinate(target_index, 0, rest_count))
            self.commit_exposed_segment(
                ScaffoldTree.ExposedSegment(r_l, t_seg, r_gr))

    @staticmethod
    def map_nodes(
        t: Optional[Node],
        f: Callable[[Node], None],
    ) -> Optional[Node]:
        """
        Copy of t where f was applied to a clone of every node.
        """
        if t is None:
            return None
        new_t = t.push()
        new_t.left = ScaffoldTree.map_nodes(new_t.left, f)
        new_t.right = ScaffoldTree.map_nodes(new_t.right, f)
        f(new_t)
        return new_t.update_sizes()

    def set_group_in_range(self, start_index: np.int64, end_index: np.int64, group_id: Optional[int]) -> None:
        def set_group(n: ScaffoldTree.Node) -> None:
            n.group_id = group_id

        with self.root_lock.gen_wlock():
            (t_l, t_seg, t_gr) = self.expose_segment_by_count(
                start_index, end_index)
            self.commit_exposed_segment(ScaffoldTree.ExposedSegment(
                t_l, ScaffoldTree.map_nodes(t_seg, set_group), t_gr))

    @staticmethod
    def traverse_node(
        t: Optional[Node],
        f: Callable[[Node], None],
    ) -> None:
        if t is None:
            return
        new_t = t.push()
        ScaffoldTree.traverse_node(new_t.left, f)
        f(new_t)
        ScaffoldTree.traverse_node(new_t.right, f)

    def traverse(self, f: Callable[[Node], None]) -> None:
        with self.root_lock.gen_rlock():
            ScaffoldTree.traverse_node(self.root, f)

    def get_segment_list(self) -> List[
        Tuple[
            SegmentDescriptor,
            ScaffoldDirection,
            Optional[int],
        ]
    ]:
        descriptors: List[Tuple[SegmentDescriptor, ScaffoldDirection, Optional[int]]] = []

        def traverse_fn(n: ScaffoldTree.Node) -> None:
            descriptors.append(
                (
                    n.segment_descriptor,
                    n.direction,
                    n.group_id,
                )
            )

        self.traverse(traverse_fn)

        return descriptors

    def extend_to_groups(self, start_index: np.int64, end_index: np.int64) -> Tuple[np.int64, np.int64]:
        """
        Widens [start_index, end_index] so that no group is cut by its borders.
        """
        segments = self.get_segment_list()
        start_index = constrain_coordinate(start_index, 0, len(segments) - 1)
        end_index = constrain_coordinate(end_index, start_index, len(segments) - 1)
        start_group = segments[start_index][2]
        if start_group is not None:
            while start_index > 0 and segments[start_index - 1][2] == start_group:
                start_index -= 1
        end_group = segments[end_index][2]
        if end_group is not None:
            while end_index < len(segments) - 1 and segments[end_index + 1][2] == end_group:
                end_index += 1
        return start_index, end_index

    def snap_target_to_groups(self, start_index: np.int64, end_index: np.int64, target_index: np.int64) -> np.int64:
        """
        Shifts a move target (counted among segments outside [start_index, end_index]) back to the
        start of the group it would otherwise split.
        """
        segments = self.get_segment_list()
        rest = segments[:start_index] + segments[end_index + 1:]
        target_index = constrain_coordinate(target_index, 0, len(rest))
        while (
            0 < target_index < len(rest)
            and rest[target_index][2] is not None
            and rest[target_index - 1][2] == rest[target_index][2]
        ):
            target_index -= 1
        return target_index

    def build_scaffold_map(self) -> ScaffoldMap:
        """
        Assigns current coordinates in assembly order; ScaffoldMap validates the result.
        """
        segments: List[ScaffoldSegment] = []
        current_start: int = 0
        for descriptor, direction, group_id in self.get_segment_list():
            segments.append(ScaffoldSegment.make_scaffold_segment(
                segment_id=descriptor.segment_id,
                name=descriptor.name,
                original_start=descriptor.original_start,
                original_end=descriptor.original_end,
                current_start=current_start,
                inverted=(direction == ScaffoldDirection.REVERSED),
                group_id=group_id,
            ))
            current_start += descriptor.length
        return ScaffoldMap(current_start, segments)
