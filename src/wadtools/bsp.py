"""Query the binary space partition tree of a level.

Each node splits the map with a line into a right (front) and left (back) half, each of which is
either another node or a subsector. The tree is walked with an explicit stack, and each node may
only be entered once, so a malformed tree can't loop forever.
"""
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence, Set, Tuple, Union
from typing_extensions import Protocol
from enum import Enum

import attrs

from wadtools import FormatError


if TYPE_CHECKING:
    from wadtools.level import Node


__all__ = [
    'ChildKind', 'Child', 'decode_child', 'encode_child', 'BBox',
    'side_test', 'traverse', 'locate', 'iter_regions', 'check_tree',
]

# Node children with this bit set are subsectors.
LEAF_BIAS = 0x8000


class Point(Protocol):
    """Anything with x and y coordinates."""
    @property
    def x(self) -> Union[int, float]: ...
    @property
    def y(self) -> Union[int, float]: ...


class ChildKind(Enum):
    """What a node child refers to."""
    SUBTREE = 'subtree'  #: Another node.
    REGION = 'region'  #: A subsector, a leaf of the tree.


@attrs.frozen
class Child:
    """One side of a node, pointing at either a node or a subsector."""
    kind: ChildKind
    index: int

    @classmethod
    def region(cls, index: int) -> 'Child':
        return cls(ChildKind.REGION, index)

    @classmethod
    def subtree(cls, index: int) -> 'Child':
        return cls(ChildKind.SUBTREE, index)

    @property
    def is_leaf(self) -> bool:
        """If true, this refers to a subsector."""
        return self.kind is ChildKind.REGION


def decode_child(raw: int) -> Child:
    """Decode a signed 16-bit child reference.

    Negative values have the top bit set, meaning a subsector. Adding the bias back clears it.
    """
    if raw < 0:
        return Child(ChildKind.REGION, raw + LEAF_BIAS)
    else:
        return Child(ChildKind.SUBTREE, raw)


def encode_child(child: Child) -> int:
    """Produce the signed 16-bit value for a child reference."""
    if not 0 <= child.index < LEAF_BIAS:
        raise ValueError(f'{child} cannot be stored in 15 bits!')
    if child.is_leaf:
        return child.index - LEAF_BIAS
    else:
        return child.index


@attrs.frozen
class BBox:
    """The bounding box of one side of a node."""
    top: int
    bottom: int
    left: int
    right: int

    def contains(self, point: Point) -> bool:
        """Check if the point is strictly inside the box."""
        return (
            self.bottom < point.y < self.top
            and self.left < point.x < self.right
        )


def _trunc_div(num: int, denom: int) -> int:
    """Integer division rounding towards zero, the way the node builder computes slopes."""
    quot = abs(num) // abs(denom)
    return quot if (num < 0) == (denom < 0) else -quot


def side_test(start: Point, delta: Point, point: Point) -> bool:
    """Check which side of a partition line the point is on.

    Returns True for the right (front) side, False for the left. The slope is computed with
    integer division, so shallow lines are treated as horizontal.
    """
    invert = delta.y < 0
    if delta.x == 0:  # Vertical.
        return (point.x > start.x) != invert

    slope = _trunc_div(delta.y, delta.x)
    if slope == 0:
        return (point.y < start.y) != (delta.x < 0)

    y_intercept = start.y - slope * start.x
    line_x = _trunc_div(point.y - y_intercept, slope)
    return (point.x > line_x) != invert


def _root_child(nodes: Sequence['Node'], root: Optional[int]) -> Child:
    if root is None:
        root = len(nodes) - 1
    return Child.subtree(root)


def _enter(nodes: Sequence['Node'], child: Child, visited: Set[int]) -> 'Node':
    """Look up a node, checking it hasn't been seen already."""
    if not 0 <= child.index < len(nodes):
        raise FormatError('NODES', f'Node #{child.index} does not exist, only {len(nodes)} nodes!')
    if child.index in visited:
        raise FormatError('NODES', f'Node #{child.index} is reached twice, the tree is not a tree!')
    visited.add(child.index)
    return nodes[child.index]


def traverse(
    nodes: Sequence['Node'],
    point: Point,
    root: Optional[int] = None,
    *,
    back_to_front: bool = False,
) -> List[int]:
    """Produce every subsector index, ordered by distance from the point.

    At each node, the side containing the point is emitted first, then the other side. Set
    ``back_to_front`` to produce the reverse order. By default the last node is the root.
    """
    if not nodes:
        return []
    result: List[int] = []
    visited: Set[int] = set()
    stack: List[Child] = [_root_child(nodes, root)]
    while stack:
        child = stack.pop()
        if child.is_leaf:
            result.append(child.index)
            continue
        node = _enter(nodes, child, visited)
        if node.point_on_right(point):
            near, far = node.right, node.left
        else:
            near, far = node.left, node.right
        if back_to_front:
            near, far = far, near
        # Last pushed is processed first.
        stack.append(far)
        stack.append(near)
    return result


def locate(nodes: Sequence['Node'], point: Point, root: Optional[int] = None) -> int:
    """Find the subsector containing the point.

    If there are no nodes, the level is a single subsector.
    """
    if not nodes:
        return 0
    visited: Set[int] = set()
    child = _root_child(nodes, root)
    while not child.is_leaf:
        node = _enter(nodes, child, visited)
        child = node.right if node.point_on_right(point) else node.left
    return child.index


def iter_regions(nodes: Sequence['Node'], root: Optional[int] = None) -> Iterator[Tuple[int, Child]]:
    """Iterate over every subsector reference in the tree, along with the node holding it.

    Right children are produced before left children.
    """
    if not nodes:
        return
    visited: Set[int] = set()
    stack: List[Child] = [_root_child(nodes, root)]
    while stack:
        child = stack.pop()
        node = _enter(nodes, child, visited)
        for side in [node.left, node.right]:
            if not side.is_leaf:
                stack.append(side)
        for side in [node.right, node.left]:
            if side.is_leaf:
                yield child.index, side


def check_tree(nodes: Sequence['Node'], region_count: int, root: Optional[int] = None) -> None:
    """Verify every child refers to a valid node or subsector, and that the tree has no loops."""
    for i, node in enumerate(nodes):
        for side in [node.right, node.left]:
            if side.is_leaf:
                if side.index >= region_count:
                    raise FormatError(
                        'NODES',
                        f'Node #{i} refers to subsector #{side.index}, '
                        f'only {region_count} subsectors!',
                    )
            elif side.index >= len(nodes):
                raise FormatError(
                    'NODES',
                    f'Node #{i} refers to node #{side.index}, only {len(nodes)} nodes!',
                )
    for _ in iter_regions(nodes, root):
        pass
