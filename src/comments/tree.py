"""Thread assembly.

Turns a flat pool of comment views into nested reply trees. The pool is
indexed by ``parent_id`` once, and the tree is then walked with an explicit
stack, so arbitrarily deep threads never hit the interpreter recursion limit
and no further store round-trips are needed per level.
"""

from collections import defaultdict
from collections.abc import Sequence
from uuid import UUID

from .models import CommentView


ParentIndex = dict[UUID | None, list[CommentView]]


def index_by_parent(pool: Sequence[CommentView]) -> ParentIndex:
    """Group views by parent id, keeping pool order within each group."""
    index: ParentIndex = defaultdict(list)
    for view in pool:
        index[view.parent_id].append(view)
    return index


def assemble(
    root: CommentView,
    pool: Sequence[CommentView],
    index: ParentIndex | None = None,
) -> list[CommentView]:
    """Return the children of ``root``, each with its own subtree attached.

    ``root`` does not need to be part of ``pool``; its id is the only join
    key. Sibling order follows pool order. Nodes are fresh copies, so the
    pool itself is never mutated and two assemblies never share a
    ``children`` list. Every comment is attached at most once, which keeps
    the walk finite even if the stored data ever contained a cycle.

    Args:
        root: View whose replies are wanted
        pool: All views of the root's post
        index: Prebuilt ``index_by_parent(pool)`` to reuse across roots
    """
    if index is None:
        index = index_by_parent(pool)

    seen: set[UUID] = {root.comment_id}

    def attach(parent_id: UUID) -> list[CommentView]:
        children = []
        for child in index.get(parent_id, ()):
            if child.comment_id in seen:
                continue
            seen.add(child.comment_id)
            children.append(child.detached())
        return children

    top = attach(root.comment_id)
    stack = list(top)
    while stack:
        node = stack.pop()
        node.children = attach(node.comment_id)
        stack.extend(node.children)
    return top


def find_orphans(pool: Sequence[CommentView]) -> list[CommentView]:
    """Views whose parent is not part of the pool (e.g. parent was deleted)."""
    ids = {view.comment_id for view in pool}
    return [v for v in pool if v.parent_id is not None and v.parent_id not in ids]


def thread(
    root: CommentView,
    pool: Sequence[CommentView],
    index: ParentIndex | None = None,
) -> CommentView:
    """Copy of ``root`` with its full reply tree attached."""
    node = root.detached()
    node.children = assemble(node, pool, index)
    return node


def assemble_forest(pool: Sequence[CommentView]) -> list[CommentView]:
    """Thread every top-level view of a post's pool.

    Orphaned subtrees are threaded too and listed after the top-level
    comments, with their dangling ``parent_id`` left as stored.
    """
    index = index_by_parent(pool)
    roots = list(index.get(None, ())) + find_orphans(pool)
    return [thread(root, pool, index) for root in roots]
