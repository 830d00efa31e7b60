"""
Persistent AVL storage for liquidation slices.

The storage is an arena of nodes addressed by integer pointers. A tree is
identified by its Root node, which holds an optional child and a piece of
arbitrary root data (the outcome of the auction the tree belongs to). Leaves
hold a value and a tez amount; branches cache the height and the total tez
of both of their children, so the total tez of a tree is available at its
root in constant time.

Trees are ordered sequences: `push_back` appends at the end and `head`
returns the first leaf. Leaf pointers are stable for the lifetime of the
leaf, even when a leaf moves from one tree to another, which is what lets
burrows keep pointers to their slices.

Nodes are frozen; the arena dict is the only mutable part. Callers that need
to keep an old snapshot around take a `copy()` first, which is cheap because
nodes are shared between copies.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from checker.ptr import PTR_NULL, Ptr, ptr_next


@dataclass(frozen=True)
class Leaf:
    value: Any
    tez: int
    parent: Ptr


@dataclass(frozen=True)
class Branch:
    left: Ptr
    left_height: int
    left_tez: int
    right: Ptr
    right_height: int
    right_tez: int
    parent: Ptr


@dataclass(frozen=True)
class Root:
    child: Optional[Ptr]
    data: Any


Node = Union[Leaf, Branch, Root]


class AvlStorage:
    def __init__(self, mem: Optional[Dict[Ptr, Node]] = None, last_ptr: Ptr = PTR_NULL):
        self.mem: Dict[Ptr, Node] = dict(mem) if mem else {}
        self.last_ptr = last_ptr

    def copy(self) -> "AvlStorage":
        return AvlStorage(self.mem, self.last_ptr)

    def __len__(self):
        return len(self.mem)

    # Arena

    def _add(self, node: Node) -> Ptr:
        self.last_ptr = ptr_next(self.last_ptr)
        self.mem[self.last_ptr] = node
        return self.last_ptr

    def _set_parent(self, ptr: Ptr, parent: Ptr) -> None:
        node = self.mem[ptr]
        assert not isinstance(node, Root)
        self.mem[ptr] = replace(node, parent=parent)

    def _height(self, ptr: Ptr) -> int:
        node = self.mem[ptr]
        if isinstance(node, Leaf):
            return 1
        assert isinstance(node, Branch)
        return 1 + max(node.left_height, node.right_height)

    def _tez(self, ptr: Ptr) -> int:
        node = self.mem[ptr]
        if isinstance(node, Leaf):
            return node.tez
        assert isinstance(node, Branch)
        return node.left_tez + node.right_tez

    # Structure

    def _make_branch(self, left: Ptr, right: Ptr) -> Ptr:
        ptr = self._add(Branch(left, 0, 0, right, 0, 0, PTR_NULL))
        self._update_branch(ptr, left, right)
        return ptr

    def _update_branch(self, ptr: Ptr, left: Ptr, right: Ptr) -> None:
        """Point a branch at new children and refresh the cached heights and tez."""
        node = self.mem[ptr]
        assert isinstance(node, Branch)
        self.mem[ptr] = Branch(
            left=left,
            left_height=self._height(left),
            left_tez=self._tez(left),
            right=right,
            right_height=self._height(right),
            right_tez=self._tez(right),
            parent=node.parent,
        )
        self._set_parent(left, ptr)
        self._set_parent(right, ptr)

    def _replace_child(self, parent_ptr: Ptr, old: Ptr, new: Ptr) -> None:
        parent = self.mem[parent_ptr]
        if isinstance(parent, Root):
            assert parent.child == old
            self.mem[parent_ptr] = replace(parent, child=new)
            self._set_parent(new, parent_ptr)
        else:
            assert isinstance(parent, Branch)
            if parent.left == old:
                self._update_branch(parent_ptr, new, parent.right)
            else:
                assert parent.right == old
                self._update_branch(parent_ptr, parent.left, new)

    def _rotate_right(self, ptr: Ptr) -> Ptr:
        node = self.mem[ptr]
        top = node.left
        top_node = self.mem[top]
        assert isinstance(top_node, Branch)
        parent = node.parent
        self._update_branch(ptr, top_node.right, node.right)
        self._update_branch(top, top_node.left, ptr)
        self._set_parent(top, parent)
        return top

    def _rotate_left(self, ptr: Ptr) -> Ptr:
        node = self.mem[ptr]
        top = node.right
        top_node = self.mem[top]
        assert isinstance(top_node, Branch)
        parent = node.parent
        self._update_branch(ptr, node.left, top_node.left)
        self._update_branch(top, ptr, top_node.right)
        self._set_parent(top, parent)
        return top

    def _rebalance(self, ptr: Ptr) -> Ptr:
        """Restore the AVL balance at ptr, returning the pointer now at its position."""
        node = self.mem[ptr]
        if not isinstance(node, Branch):
            return ptr
        if node.left_height - node.right_height > 1:
            left = self.mem[node.left]
            if left.left_height < left.right_height:
                new_left = self._rotate_left(node.left)
                self._update_branch(ptr, new_left, node.right)
            return self._rotate_right(ptr)
        if node.right_height - node.left_height > 1:
            right = self.mem[node.right]
            if right.right_height < right.left_height:
                new_right = self._rotate_right(node.right)
                self._update_branch(ptr, node.left, new_right)
            return self._rotate_left(ptr)
        return ptr

    def _join(self, left: Ptr, right: Ptr) -> Ptr:
        """Concatenate two trees, every element of `left` coming first."""
        left_height, right_height = self._height(left), self._height(right)
        if abs(left_height - right_height) <= 1:
            return self._make_branch(left, right)
        if left_height > right_height:
            node = self.mem[left]
            new_right = self._join(node.right, right)
            self._update_branch(left, node.left, new_right)
            return self._rebalance(left)
        node = self.mem[right]
        new_left = self._join(left, node.left)
        self._update_branch(right, new_left, node.right)
        return self._rebalance(right)

    def _rebalance_upwards(self, ptr: Ptr) -> Ptr:
        while True:
            node = self.mem[ptr]
            if isinstance(node, Root):
                return ptr
            parent = node.parent
            self._update_branch(ptr, node.left, node.right)
            new_ptr = self._rebalance(ptr)
            if new_ptr != ptr:
                self._replace_child(parent, ptr, new_ptr)
            ptr = parent

    # Trees

    def mk_empty(self, data: Any = None) -> Ptr:
        return self._add(Root(child=None, data=data))

    def root_data(self, root_ptr: Ptr) -> Any:
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        return root.data

    def set_root_data(self, root_ptr: Ptr, data: Any) -> None:
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        self.mem[root_ptr] = replace(root, data=data)

    def is_empty(self, root_ptr: Ptr) -> bool:
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        return root.child is None

    def avl_tez(self, root_ptr: Ptr) -> int:
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        return 0 if root.child is None else self._tez(root.child)

    def avl_height(self, root_ptr: Ptr) -> int:
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        return 0 if root.child is None else self._height(root.child)

    def find_root(self, ptr: Ptr) -> Ptr:
        node = self.mem[ptr]
        while not isinstance(node, Root):
            assert node.parent != PTR_NULL, "detached node has no root"
            ptr = node.parent
            node = self.mem[ptr]
        return ptr

    def head(self, root_ptr: Ptr) -> Optional[Ptr]:
        """The first leaf of the tree, if any."""
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        ptr = root.child
        if ptr is None:
            return None
        node = self.mem[ptr]
        while isinstance(node, Branch):
            ptr = node.left
            node = self.mem[ptr]
        return ptr

    def iter_leaves(self, root_ptr: Ptr) -> Iterator[Ptr]:
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        stack = [] if root.child is None else [root.child]
        while stack:
            ptr = stack.pop()
            node = self.mem[ptr]
            if isinstance(node, Leaf):
                yield ptr
            else:
                stack.append(node.right)
                stack.append(node.left)

    def delete_tree(self, root_ptr: Ptr) -> None:
        root = self.mem.pop(root_ptr)
        assert isinstance(root, Root)
        stack = [] if root.child is None else [root.child]
        while stack:
            node = self.mem.pop(stack.pop())
            if isinstance(node, Branch):
                stack.extend((node.left, node.right))

    # Leaves

    def is_leaf(self, ptr: Ptr) -> bool:
        return isinstance(self.mem.get(ptr), Leaf)

    def read_leaf(self, ptr: Ptr) -> Tuple[Any, int]:
        node = self.mem.get(ptr)
        assert isinstance(node, Leaf), f"pointer {ptr} is not a leaf"
        return node.value, node.tez

    def update_leaf(self, ptr: Ptr, fn) -> None:
        """Replace the value of a leaf; its tez amount is left as is."""
        node = self.mem.get(ptr)
        assert isinstance(node, Leaf), f"pointer {ptr} is not a leaf"
        self.mem[ptr] = replace(node, value=fn(node.value))

    def push_back(self, root_ptr: Ptr, value: Any, tez: int) -> Ptr:
        leaf_ptr = self._add(Leaf(value, tez, PTR_NULL))
        self.attach_back(root_ptr, leaf_ptr)
        return leaf_ptr

    def push_front(self, root_ptr: Ptr, value: Any, tez: int) -> Ptr:
        leaf_ptr = self._add(Leaf(value, tez, PTR_NULL))
        self.attach_front(root_ptr, leaf_ptr)
        return leaf_ptr

    def attach_back(self, root_ptr: Ptr, leaf_ptr: Ptr) -> None:
        """Append a detached leaf to the end of a tree."""
        self._attach(root_ptr, leaf_ptr, at_front=False)

    def attach_front(self, root_ptr: Ptr, leaf_ptr: Ptr) -> None:
        self._attach(root_ptr, leaf_ptr, at_front=True)

    def _attach(self, root_ptr: Ptr, leaf_ptr: Ptr, at_front: bool) -> None:
        leaf = self.mem[leaf_ptr]
        assert isinstance(leaf, Leaf) and leaf.parent == PTR_NULL
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        if root.child is None:
            new_child = leaf_ptr
        elif at_front:
            new_child = self._join(leaf_ptr, root.child)
        else:
            new_child = self._join(root.child, leaf_ptr)
        self.mem[root_ptr] = replace(root, child=new_child)
        self._set_parent(new_child, root_ptr)

    def detach(self, leaf_ptr: Ptr) -> Ptr:
        """
        Unlink a leaf from its tree, keeping the leaf itself in storage.

        Returns the root of the tree the leaf was removed from.
        """
        leaf = self.mem[leaf_ptr]
        assert isinstance(leaf, Leaf) and leaf.parent != PTR_NULL
        parent_ptr = leaf.parent
        parent = self.mem[parent_ptr]
        self._set_parent(leaf_ptr, PTR_NULL)
        if isinstance(parent, Root):
            self.mem[parent_ptr] = replace(parent, child=None)
            return parent_ptr
        sibling = parent.right if parent.left == leaf_ptr else parent.left
        grandparent = parent.parent
        del self.mem[parent_ptr]
        self._replace_child(grandparent, parent_ptr, sibling)
        return self._rebalance_upwards(grandparent)

    def replace_detached_leaf(self, leaf_ptr: Ptr, value: Any, tez: int) -> None:
        leaf = self.mem[leaf_ptr]
        assert isinstance(leaf, Leaf) and leaf.parent == PTR_NULL
        self.mem[leaf_ptr] = Leaf(value, tez, PTR_NULL)

    def delete(self, leaf_ptr: Ptr) -> Ptr:
        """Remove a leaf from storage and return the root of its former tree."""
        root_ptr = self.detach(leaf_ptr)
        del self.mem[leaf_ptr]
        return root_ptr

    # Checks

    def assert_invariants(self, root_ptr: Ptr) -> None:
        root = self.mem[root_ptr]
        assert isinstance(root, Root)
        if root.child is not None:
            self._check_subtree(root.child, root_ptr)

    def _check_subtree(self, ptr: Ptr, parent: Ptr) -> Tuple[int, int]:
        node = self.mem[ptr]
        assert node.parent == parent, f"bad parent pointer at {ptr}"
        if isinstance(node, Leaf):
            return 1, node.tez
        assert isinstance(node, Branch)
        left_height, left_tez = self._check_subtree(node.left, ptr)
        right_height, right_tez = self._check_subtree(node.right, ptr)
        assert (node.left_height, node.left_tez) == (left_height, left_tez)
        assert (node.right_height, node.right_tez) == (right_height, right_tez)
        assert abs(left_height - right_height) <= 1, f"unbalanced branch at {ptr}"
        return 1 + max(left_height, right_height), left_tez + right_tez
