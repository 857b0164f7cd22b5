from typing import List, Optional, Tuple

import pytest
from hypothesis import given, settings, strategies as st, HealthCheck

from hilift.core.assembly_state import AssemblyState
from hilift.core.common import Chromosome, MalformedAssemblyError, ScaffoldDirection
from hilift.core.scaffold_map import ScaffoldMap
from hilift.core.scaffold_tree import ScaffoldTree

ModelEntry = Tuple[int, bool]


def build_tree(lengths: List[int]) -> Tuple[ScaffoldTree, List[ModelEntry]]:
    scaffold_map = ScaffoldMap.from_lengths(
        [(f"s{i}", length) for i, length in enumerate(lengths)],
        [(f"s{i}", False) for i in range(len(lengths))],
    )
    tree = ScaffoldTree.from_scaffold_map(scaffold_map, random_seed=0)
    return tree, [(i, False) for i in range(len(lengths))]


def tree_state(tree: ScaffoldTree) -> List[ModelEntry]:
    return [
        (d.segment_id, direction == ScaffoldDirection.REVERSED)
        for d, direction, _ in tree.get_segment_list()
    ]


def model_reverse(model: List[ModelEntry], start: int, end: int) -> List[ModelEntry]:
    middle = [(i, not inverted) for i, inverted in reversed(model[start:end + 1])]
    return model[:start] + middle + model[end + 1:]


def model_move(model: List[ModelEntry], start: int, end: int, target: int) -> List[ModelEntry]:
    moved = model[start:end + 1]
    rest = model[:start] + model[end + 1:]
    target = max(0, min(target, len(rest)))
    return rest[:target] + moved + rest[target:]


operation_strategy = st.tuples(
    st.sampled_from(('reverse', 'move')),
    st.floats(min_value=0.0, max_value=1.0, exclude_max=True),
    st.floats(min_value=0.0, max_value=1.0, exclude_max=True),
    st.integers(min_value=0, max_value=200),
)


@settings(
    max_examples=300,
    deadline=30000,
    derandomize=True,
    report_multiple_bugs=False,
    suppress_health_check=(
        HealthCheck.filter_too_much,
        HealthCheck.data_too_large
    )
)
@given(
    lengths=st.lists(st.integers(min_value=1, max_value=100000), min_size=1, max_size=60),
    operations=st.lists(operation_strategy, min_size=1, max_size=30),
)
def test_edits_match_list_model(lengths, operations):
    tree, model = build_tree(lengths)
    n = len(lengths)
    for kind, a, b, target in operations:
        start, end = sorted((int(a * n), int(b * n)))
        if kind == 'reverse':
            tree.reverse_segments_in_range(start, end)
            model = model_reverse(model, start, end)
        else:
            tree.move_segments_in_range(start, end, target)
            model = model_move(model, start, end, target)
        assert tree_state(tree) == model, "Tree order should match list model after every edit"
        assert tree.get_node_count() == n
        assert tree.get_length_bp() == sum(lengths)

    scaffold_map = tree.build_scaffold_map()
    assert scaffold_map.chromosome_length == sum(lengths)
    assert [(s.segment_id, s.inverted) for s in scaffold_map] == model


def test_double_reverse_is_identity():
    tree, model = build_tree([10, 20, 30, 40])
    tree.reverse_segments_in_range(1, 3)
    assert tree_state(tree) == [(0, False), (3, True), (2, True), (1, True)]
    tree.reverse_segments_in_range(1, 3)
    assert tree_state(tree) == model


def test_get_index_at_position():
    tree, _ = build_tree([10, 20, 30])
    assert tree.get_index_at_position(0) == 0
    assert tree.get_index_at_position(10) == 1
    assert tree.get_index_at_position(29) == 1
    assert tree.get_index_at_position(59) == 2
    assert tree.get_index_at_position(1000) == 2


def test_edits_are_persistent():
    tree, model = build_tree([10, 20, 30, 40, 50])
    old_root = tree.root
    tree.move_segments_in_range(0, 1, 3)
    assert tree_state(tree) == [(2, False), (3, False), (4, False), (0, False), (1, False)]
    tree.root = old_root
    assert tree_state(tree) == model


def chromosome_of(lengths: List[int]) -> Chromosome:
    return Chromosome(1, 'chr1', sum(lengths))


def install(state: AssemblyState, lengths: List[int]) -> Chromosome:
    chromosome = chromosome_of(lengths)
    state.import_assembly(
        chromosome,
        [(f"s{i}", length) for i, length in enumerate(lengths)],
        [(f"s{i}", False) for i in range(len(lengths))],
    )
    return chromosome


def test_unedited_chromosome_gets_identity_map():
    state = AssemblyState(random_seed=0)
    chromosome = Chromosome(2, 'chr2', 5000)
    scaffold_map = state.get_scaffold_map(chromosome)
    assert scaffold_map.is_identity()
    assert scaffold_map.chromosome_length == 5000


def test_install_rejects_length_mismatch_and_keeps_previous_map():
    state = AssemblyState(random_seed=0)
    chromosome = install(state, [100, 200])
    before = state.get_scaffold_map(chromosome)
    epoch = state.epoch.get()
    with pytest.raises(MalformedAssemblyError):
        state.install_scaffold_map(chromosome, ScaffoldMap.identity(999))
    with pytest.raises(MalformedAssemblyError):
        state.import_assembly(chromosome, [('s0', 100), ('s1', 200)], [('s0', False)])
    assert state.get_scaffold_map(chromosome) == before
    assert state.epoch.get() == epoch


def test_edits_bump_epoch():
    state = AssemblyState(random_seed=0)
    chromosome = install(state, [100, 200, 300])
    epoch = state.epoch.get()
    scaffold_map = state.reverse_selection_range(chromosome, 0, 1)
    assert state.epoch.get() == epoch + 1
    assert [(s.name, s.inverted) for s in scaffold_map] == [('s1', True), ('s0', True), ('s2', False)]
    assert state.get_scaffold_map(chromosome) == scaffold_map


def test_rejected_edit_rolls_back():
    state = AssemblyState(random_seed=0)
    chromosome = install(state, [100, 200, 300])
    before = state.get_scaffold_map(chromosome)
    epoch = state.epoch.get()

    def broken_edit(tree: ScaffoldTree) -> None:
        tree.reverse_segments_in_range(0, 2)
        raise MalformedAssemblyError("broken")

    with pytest.raises(MalformedAssemblyError):
        state.apply_edit(chromosome, broken_edit, "broken edit")
    assert state.get_scaffold_map(chromosome) == before
    assert state.get_tree(chromosome).build_scaffold_map() == before
    assert state.epoch.get() == epoch


@pytest.mark.parametrize(
    "kind, start, end, target",
    [
        ('reverse', 7, 9, None),
        ('reverse', -1, 0, None),
        ('reverse', 2, 1, None),
        ('move', 0, 3, 0),
        ('move', 0, 0, 3),
        ('move', 1, 2, -1),
        ('group', 0, 3, None),
        ('ungroup', 5, 5, None),
    ]
)
def test_out_of_range_selection_is_rejected(kind, start, end, target):
    state = AssemblyState(random_seed=0)
    chromosome = install(state, [100, 100, 100])
    before = state.get_scaffold_map(chromosome)
    epoch = state.epoch.get()
    with pytest.raises(MalformedAssemblyError):
        if kind == 'reverse':
            state.reverse_selection_range(chromosome, start, end)
        elif kind == 'move':
            state.move_selection_range(chromosome, start, end, target)
        elif kind == 'group':
            state.group_segments(chromosome, start, end)
        else:
            state.ungroup_segments(chromosome, start, end)
    assert state.get_scaffold_map(chromosome) == before
    assert state.get_tree(chromosome).build_scaffold_map() == before
    assert state.epoch.get() == epoch

    # Last segment to the front is the largest valid move
    scaffold_map = state.move_selection_range(chromosome, 2, 2, 0)
    assert [s.name for s in scaffold_map] == ['s2', 's0', 's1']
    scaffold_map = state.move_selection_range(chromosome, 0, 0, 2)
    assert [s.name for s in scaffold_map] == ['s0', 's1', 's2']


def test_groups_move_and_reverse_as_a_whole():
    state = AssemblyState(random_seed=0)
    chromosome = install(state, [10, 20, 30, 40, 50])
    state.group_segments(chromosome, 1, 2)

    # Selection touching one member of the group drags the whole group
    scaffold_map = state.move_selection_range(chromosome, 2, 2, 0)
    assert [s.name for s in scaffold_map] == ['s1', 's2', 's0', 's3', 's4']

    scaffold_map = state.reverse_selection_range(chromosome, 0, 0)
    assert [(s.name, s.inverted) for s in scaffold_map][:2] == [('s2', True), ('s1', True)]

    scaffold_map = state.ungroup_segments(chromosome, 0, 1)
    assert all(s.group_id is None for s in scaffold_map)
    scaffold_map = state.move_selection_range(chromosome, 0, 0, 4)
    assert [s.name for s in scaffold_map] == ['s1', 's0', 's3', 's4', 's2']


def group_runs_are_contiguous(scaffold_map: ScaffoldMap) -> bool:
    seen: List[Optional[int]] = []
    previous: Optional[int] = None
    for s in scaffold_map:
        if s.group_id is not None and s.group_id != previous and s.group_id in seen:
            return False
        if s.group_id is not None:
            seen.append(s.group_id)
        previous = s.group_id
    return True


@settings(
    max_examples=100,
    deadline=30000,
    derandomize=True,
    report_multiple_bugs=False,
    suppress_health_check=(
        HealthCheck.filter_too_much,
        HealthCheck.data_too_large
    )
)
@given(
    lengths=st.lists(st.integers(min_value=1, max_value=10000), min_size=1, max_size=30),
    operations=st.lists(
        st.tuples(
            st.sampled_from(('reverse', 'move', 'group', 'ungroup')),
            st.integers(min_value=0, max_value=40),
            st.integers(min_value=0, max_value=40),
            st.integers(min_value=0, max_value=40),
        ),
        min_size=1,
        max_size=20
    ),
)
def test_assembly_stays_valid_under_random_edits(lengths, operations):
    state = AssemblyState(random_seed=0)
    chromosome = install(state, lengths)
    for kind, a, b, target in operations:
        start, end = sorted((a % len(lengths), b % len(lengths)))
        target %= len(lengths) - (end - start)
        if kind == 'reverse':
            scaffold_map = state.reverse_selection_range(chromosome, start, end)
        elif kind == 'move':
            scaffold_map = state.move_selection_range(chromosome, start, end, target)
        elif kind == 'group':
            scaffold_map = state.group_segments(chromosome, start, end)
        else:
            scaffold_map = state.ungroup_segments(chromosome, start, end)
        assert scaffold_map.chromosome_length == chromosome.length
        assert len(scaffold_map) == len(lengths)
        assert sorted(s.segment_id for s in scaffold_map) == list(range(len(lengths)))
        assert group_runs_are_contiguous(scaffold_map), "Group members should stay adjacent"
