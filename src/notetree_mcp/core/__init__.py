"""Pure tree and move logic over flat folder/note collections."""

from notetree_mcp.core.moves import (DeletePlan, MovePlan, children_index,
                                     collect_descendants, move_in_list,
                                     plan_folder_delete, validate_move,
                                     validate_note_move, validate_reorder)
from notetree_mcp.core.tree import (TreeBuildOptions, TreeNode, TreeRecord,
                                    TreeSortKey, WorkspaceTree, build_tree,
                                    build_workspace_tree, count_nodes,
                                    find_node, flatten)

__all__ = [
    "DeletePlan",
    "MovePlan",
    "TreeBuildOptions",
    "TreeNode",
    "TreeRecord",
    "TreeSortKey",
    "WorkspaceTree",
    "build_tree",
    "build_workspace_tree",
    "children_index",
    "collect_descendants",
    "count_nodes",
    "find_node",
    "flatten",
    "move_in_list",
    "plan_folder_delete",
    "validate_move",
    "validate_note_move",
    "validate_reorder",
]
