"""
Clustering Algorithms

Union-Find (Disjoint Set Union) over dense integer indices, used by the node
deduplicator. String node ids are translated to indices at the boundary, so
parent and rank live in two parallel int lists.
"""

from __future__ import annotations


class UnionFind:
    """
    Union-Find data structure with path compression and union by rank.

    Time Complexity:
        - find(): O(α(n)) amortized (nearly constant)
        - union(): O(α(n)) amortized
        where α is the inverse Ackermann function
    """

    def __init__(self, n: int) -> None:
        """Initialize Union-Find with n elements (0 to n-1)."""
        self.parent = list(range(n))
        self.rank = [0] * n
        self.n = n

    def find(self, x: int) -> int:
        """Find root of element x with path compression."""
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, x: int, y: int) -> bool:
        """Union components containing x and y. Returns True if merged."""
        px, py = self.find(x), self.find(y)
        if px == py:
            return False

        # Union by rank; ties keep the lower index as root
        if self.rank[px] < self.rank[py] or (
            self.rank[px] == self.rank[py] and py < px
        ):
            px, py = py, px
        self.parent[py] = px
        if self.rank[px] == self.rank[py]:
            self.rank[px] += 1
        return True

    def connected(self, x: int, y: int) -> bool:
        """Check if x and y are in the same component."""
        return self.find(x) == self.find(y)

    def get_components(self) -> list[list[int]]:
        """
        Get all connected components as lists of indices.

        Components appear in the order their roots are first reached when
        scanning indices 0..n-1; members keep index order.
        """
        components: dict[int, list[int]] = {}
        for i in range(self.n):
            components.setdefault(self.find(i), []).append(i)
        return list(components.values())


def union_find_components(
    n: int,
    edges: list[tuple[int, int]],
) -> list[list[int]]:
    """
    Find connected components given edges.

    Args:
        n: Number of nodes
        edges: List of (i, j) pairs that belong together

    Returns:
        List of components (each is a list of node indices)
    """
    uf = UnionFind(n)
    for i, j in edges:
        uf.union(i, j)
    return uf.get_components()
