"""Tests for move, reorder and delete planning."""
import pytest

from notetree_mcp.core.moves import (children_index, collect_descendants,
                                     move_in_list, plan_folder_delete,
                                     validate_move, validate_note_move,
                                     validate_reorder)
from notetree_mcp.exceptions import ConsistencyError, ErrorCode, ValidationError
from notetree_mcp.models.schema import DeletePolicy, ItemKind
from tests.fakes import make_folder, make_note


@pytest.fixture
def folders():
    """Root 1 with children 2 and 3; 2 has child 4; 5 is a second root.

        1
        +-- 2
        |   +-- 4
        +-- 3
        5
    """
    return [
        make_folder(1, position=0),
        make_folder(2, parent_id=1, position=0),
        make_folder(3, parent_id=1, position=1),
        make_folder(4, parent_id=2, position=0),
        make_folder(5, position=1),
    ]


class TestDescendants:
    """Tests for children_index and collect_descendants."""

    def test_children_index_orders_siblings(self, folders):
        index = children_index(folders)
        assert index[None] == [1, 5]
        assert index[1] == [2, 3]
        assert index[2] == [4]

    def test_collect_descendants(self, folders):
        index = children_index(folders)
        assert collect_descendants(index, 1) == {2, 3, 4}
        assert collect_descendants(index, 4) == set()

    def test_cycle_in_index_terminates(self):
        index = {1: [2], 2: [3], 3: [1]}
        assert collect_descendants(index, 1) == {2, 3}


class TestValidateMove:
    """Tests for validate_move."""

    def test_child_as_parent_is_a_cycle(self):
        """Moving folder 1 under its own child 2 is rejected."""
        folders = [make_folder(1), make_folder(2, parent_id=1)]
        with pytest.raises(ConsistencyError) as exc_info:
            validate_move(folders, 1, 2, 0)
        assert exc_info.value.code == ErrorCode.CYCLE_DETECTED

    @pytest.mark.parametrize("folder_id", [1, 2, 3, 4, 5])
    def test_self_parent_always_fails(self, folders, folder_id):
        with pytest.raises(ConsistencyError) as exc_info:
            validate_move(folders, folder_id, folder_id, 0)
        assert exc_info.value.code == ErrorCode.SELF_PARENT

    @pytest.mark.parametrize("descendant", [2, 3, 4])
    def test_any_descendant_is_rejected(self, folders, descendant):
        with pytest.raises(ConsistencyError):
            validate_move(folders, 1, descendant, 0)

    def test_non_descendant_target_succeeds(self, folders):
        """Moving 2 (with its child) under root 5 is legal."""
        plan = validate_move(folders, 2, 5, 0)

        assert plan.kind is ItemKind.FOLDER
        assert plan.is_reorder is False
        assert plan.old_sibling_ids == (3,)
        assert plan.new_sibling_ids == (2,)
        assert plan.placements() == {3: (1, 0), 2: (5, 0)}

    def test_missing_target(self, folders):
        with pytest.raises(ConsistencyError) as exc_info:
            validate_move(folders, 2, 99, 0)
        assert exc_info.value.code == ErrorCode.TARGET_NOT_FOUND

    def test_unknown_folder(self, folders):
        with pytest.raises(ValidationError) as exc_info:
            validate_move(folders, 99, None, 0)
        assert exc_info.value.code == ErrorCode.INVALID_ID

    def test_move_to_root(self, folders):
        plan = validate_move(folders, 4, None, 1)
        assert plan.new_sibling_ids == (1, 4, 5)
        assert plan.old_sibling_ids == ()

    def test_reorder_within_parent(self, folders):
        plan = validate_move(folders, 3, 1, 0)
        assert plan.is_reorder is True
        assert plan.placements() == {3: (1, 0), 2: (1, 1)}

    def test_position_may_append(self, folders):
        plan = validate_move(folders, 5, 1, 2)
        assert plan.new_sibling_ids == (2, 3, 5)

    @pytest.mark.parametrize("position", [-1, 3, 10])
    def test_position_out_of_range(self, folders, position):
        with pytest.raises(ValidationError) as exc_info:
            validate_move(folders, 5, 1, position)
        assert exc_info.value.code == ErrorCode.INVALID_POSITION

    def test_position_must_be_int(self, folders):
        with pytest.raises(ValidationError):
            validate_move(folders, 5, 1, True)


class TestValidateNoteMove:
    """Tests for validate_note_move."""

    def test_move_between_folders(self):
        notes = [
            make_note(10, folder_id=1, position=0),
            make_note(11, folder_id=1, position=1),
            make_note(12, folder_id=2, position=0),
        ]
        plan = validate_note_move({1, 2}, notes, 10, 2, 1)

        assert plan.kind is ItemKind.NOTE
        assert plan.placements() == {11: (1, 0), 12: (2, 0), 10: (2, 1)}

    def test_unfile_note(self):
        notes = [make_note(10, folder_id=1)]
        plan = validate_note_move({1}, notes, 10, None, 0)
        assert plan.placements() == {10: (None, 0)}

    def test_missing_folder(self):
        with pytest.raises(ConsistencyError):
            validate_note_move({1}, [make_note(10)], 10, 7, 0)

    def test_unknown_note(self):
        with pytest.raises(ValidationError):
            validate_note_move({1}, [], 10, 1, 0)


class TestValidateReorder:
    """Tests for validate_reorder and move_in_list."""

    def test_full_group(self, folders):
        assert validate_reorder(folders, 1, [3, 2]) == {3: 0, 2: 1}

    @pytest.mark.parametrize("ordered", [[3], [3, 2, 2], [3, 2, 4], []])
    def test_incomplete_or_foreign_ids(self, folders, ordered):
        with pytest.raises(ValidationError) as exc_info:
            validate_reorder(folders, 1, ordered)
        assert exc_info.value.code == ErrorCode.INVALID_REORDER

    def test_move_in_list(self):
        assert move_in_list(["a", "b", "c"], 0, 2) == ["b", "c", "a"]
        assert move_in_list(["a", "b", "c"], 2, 0) == ["c", "a", "b"]

    def test_move_in_list_bounds(self):
        with pytest.raises(ValidationError):
            move_in_list(["a"], 0, 1)


class TestPlanFolderDelete:
    """Tests for plan_folder_delete."""

    def test_cascade_removes_subtree_and_notes(self, folders):
        notes = [make_note(10, folder_id=2), make_note(11, folder_id=4), make_note(12, folder_id=3)]
        plan = plan_folder_delete(folders, notes, 2, DeletePolicy.CASCADE)

        assert plan.removed_folder_ids == {2, 4}
        assert plan.removed_note_ids == {10, 11}
        assert plan.folder_placements == {3: (1, 0)}
        assert plan.note_placements == {}

    def test_promote_splices_children_into_parent(self, folders):
        """Children take the deleted folder's slot; its notes follow the parent's."""
        folders.append(make_folder(6, parent_id=2, position=1))
        notes = [
            make_note(10, folder_id=1, position=0),
            make_note(11, folder_id=2, position=0),
            make_note(12, folder_id=2, position=1),
        ]
        plan = plan_folder_delete(folders, notes, 2, DeletePolicy.PROMOTE)

        assert plan.removed_folder_ids == {2}
        assert plan.removed_note_ids == frozenset()
        assert plan.folder_placements == {4: (1, 0), 6: (1, 1), 3: (1, 2)}
        assert plan.note_placements == {10: (1, 0), 11: (1, 1), 12: (1, 2)}

    def test_promote_root_folder_moves_children_to_root(self, folders):
        plan = plan_folder_delete(folders, [make_note(10, folder_id=1)], 1, "promote")
        assert plan.policy is DeletePolicy.PROMOTE
        assert plan.folder_placements == {2: (None, 0), 3: (None, 1), 5: (None, 2)}
        assert plan.note_placements == {10: (None, 0)}

    def test_unknown_policy(self, folders):
        with pytest.raises(ValidationError):
            plan_folder_delete(folders, [], 1, "orphan")

    def test_unknown_folder(self, folders):
        with pytest.raises(ValidationError):
            plan_folder_delete(folders, [], 99, DeletePolicy.CASCADE)
