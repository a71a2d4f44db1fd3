"""
HNSW (Hierarchical Navigable Small World) approximate nearest neighbor index.

Vectors are organised in layers like a skip list. Upper layers hold few nodes
with long-range links; layer 0 holds every node. A search starts at the entry
point on the top layer, greedily walks down to layer 1, then runs a bounded
beam search on layer 0.

Distances inside the graph are always Euclidean, whatever metric the hosting
store scores with.

Reference: Malkov & Yashunin, "Efficient and robust approximate nearest
neighbor search using Hierarchical Navigable Small World graphs" (2018).
"""

import heapq
import logging
import math
import random
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from ..core.schema import HNSWConfig
from ..util.logging import logger
from .errors import DimensionMismatchError
from .types import IndexSearchResult, IndexStats, VectorLike

# (distance, node id), ordered by distance first
_Candidate = Tuple[float, str]


@dataclass(frozen=True)
class ResolvedHNSWConfig:
    """HNSW parameters with derived values filled in."""

    m: int
    ef_construction: int
    ef_search: int
    ml: float
    max_m0: int


class _Node:
    """A graph node. Adjacency holds neighbor ids with cached distances, one dict per layer."""

    __slots__ = ("id", "vector", "level", "neighbors")

    def __init__(self, node_id: str, vector: np.ndarray, level: int):
        self.id = node_id
        self.vector = vector
        self.level = level
        self.neighbors: List[Dict[str, float]] = [{} for _ in range(level + 1)]


class HNSWIndex:
    """
    Approximate nearest neighbor index with roughly logarithmic search cost.

    Nodes live in a single table keyed by id and adjacency stores ids, so a
    delete only needs table lookups to repair its neighbors. The index is not
    thread-safe; callers serialise writes.

    Example:
        index = HNSWIndex(384, m=16, ef_construction=200, ef_search=100)
        index.insert("vec-1", vector)
        results = index.search(query, 5)  # [IndexSearchResult(id, distance), ...]
    """

    name = "HNSWIndex"

    def __init__(self, dimensions: int, m: int = 16, ef_construction: int = 200,
                 ef_search: int = 100, rng: Optional[random.Random] = None):
        """
        Create a new HNSW index.

        Args:
            dimensions: Dimension of indexed vectors (must be positive)
            m: Max connections per node per layer; layer 0 allows 2 * m
            ef_construction: Candidate list size while building
            ef_search: Candidate list size while searching
            rng: Random source for level assignment; pass a seeded
                 random.Random for reproducible graphs
        """
        if dimensions <= 0:
            raise ValueError(f"HNSW dimensions must be positive, got: {dimensions}")

        config = HNSWConfig(m=m, ef_construction=ef_construction, ef_search=ef_search)

        self.dimensions = dimensions
        self._m = config.m
        self._ef_construction = config.ef_construction
        self._ef_search = config.ef_search
        self._ml = 1 / math.log(config.m)
        self._max_m0 = 2 * config.m
        self._rng = rng or random.Random()

        self._nodes: Dict[str, _Node] = {}
        self._entry_point: Optional[str] = None
        self._max_layer = -1

    @classmethod
    def from_config(cls, dimensions: int, config: HNSWConfig,
                    rng: Optional[random.Random] = None) -> "HNSWIndex":
        return cls(dimensions, m=config.m, ef_construction=config.ef_construction,
                   ef_search=config.ef_search, rng=rng)

    # Public API

    def insert(self, node_id: str, vector: VectorLike) -> None:
        """
        Insert a vector into the index.

        Re-inserting an existing id replaces its vector in place without
        moving the node in the graph.

        Raises:
            DimensionMismatchError: vector length differs from the index dimensions
        """
        arr = self._validate(vector)

        existing = self._nodes.get(node_id)
        if existing is not None:
            existing.vector = arr
            return

        level = self._random_level()
        node = _Node(node_id, arr, level)

        if self._entry_point is None:
            self._nodes[node_id] = node
            self._entry_point = node_id
            self._max_layer = level
            return

        cursor = self._entry_point
        cursor_dist = self._distance(arr, self._nodes[cursor].vector)

        # Phase 1: navigate down to the new node's level without adding edges
        for layer in range(self._max_layer, level, -1):
            cursor, cursor_dist = self._greedy_closest(arr, cursor, cursor_dist, layer)

        # Phase 2: connect on every layer the new node shares with the graph
        for layer in range(min(level, self._max_layer), -1, -1):
            candidates = self._search_layer(arr, [(cursor_dist, cursor)], self._ef_construction, layer)

            max_connections = self._max_m0 if layer == 0 else self._m
            selected = self._select_neighbors(candidates, max_connections)

            for dist, neighbor_id in selected:
                node.neighbors[layer][neighbor_id] = dist

                neighbor = self._nodes[neighbor_id]
                if layer < len(neighbor.neighbors):
                    neighbor.neighbors[layer][node_id] = dist
                    if len(neighbor.neighbors[layer]) > max_connections:
                        self._prune_connections(neighbor, layer, max_connections)

            if candidates:
                cursor_dist, cursor = candidates[0]

        self._nodes[node_id] = node

        if level > self._max_layer:
            logger.log_operation(
                "index.entry_point", "promoted",
                {"node_id": node_id, "level": level, "previous_max_layer": self._max_layer},
                logging.DEBUG,
            )
            self._entry_point = node_id
            self._max_layer = level

    def search(self, query: VectorLike, k: int) -> List[IndexSearchResult]:
        """
        Find the k nearest neighbors of the query.

        Returns:
            Up to k results sorted by distance, closest first

        Raises:
            DimensionMismatchError: query length differs from the index dimensions
        """
        arr = self._validate(query)
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        if self._entry_point is None:
            return []

        ef = max(self._ef_search, k)

        cursor = self._entry_point
        cursor_dist = self._distance(arr, self._nodes[cursor].vector)
        for layer in range(self._max_layer, 0, -1):
            cursor, cursor_dist = self._greedy_closest(arr, cursor, cursor_dist, layer)

        candidates = self._search_layer(arr, [(cursor_dist, cursor)], ef, 0)
        return [IndexSearchResult(id=node_id, distance=dist) for dist, node_id in candidates[:k]]

    def delete(self, node_id: str) -> bool:
        """
        Remove a vector from the index.

        Only the direct neighbors' back-references are repaired; the graph is
        not rebalanced, so heavy deletion degrades recall until a rebuild.

        Returns:
            True if the vector was deleted, False if it was not present
        """
        node = self._nodes.get(node_id)
        if node is None:
            return False

        for layer, links in enumerate(node.neighbors):
            for neighbor_id in links:
                neighbor = self._nodes.get(neighbor_id)
                if neighbor is not None and layer < len(neighbor.neighbors):
                    neighbor.neighbors[layer].pop(node_id, None)

        del self._nodes[node_id]

        if self._entry_point == node_id:
            self._elect_entry_point()

        return True

    def size(self) -> int:
        return len(self._nodes)

    def has(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def ids(self) -> Iterator[str]:
        return iter(list(self._nodes))

    def get_vector(self, node_id: str) -> Optional[np.ndarray]:
        node = self._nodes.get(node_id)
        return None if node is None else node.vector.copy()

    def get_level(self, node_id: str) -> Optional[int]:
        """Top layer of a node, None if absent."""
        node = self._nodes.get(node_id)
        return None if node is None else node.level

    def clear(self) -> None:
        """Drop every node and reset the entry point."""
        self._nodes.clear()
        self._entry_point = None
        self._max_layer = -1

    @property
    def entry_point(self) -> Optional[str]:
        return self._entry_point

    @property
    def max_layer(self) -> int:
        return self._max_layer

    def get_config(self) -> ResolvedHNSWConfig:
        """Read-only snapshot of the current parameters."""
        return ResolvedHNSWConfig(
            m=self._m,
            ef_construction=self._ef_construction,
            ef_search=self._ef_search,
            ml=self._ml,
            max_m0=self._max_m0,
        )

    def set_ef_search(self, ef_search: int) -> None:
        """Adjust the search candidate list size. Does not affect already built links."""
        if ef_search < 1:
            raise ValueError(f"ef_search must be >= 1, got {ef_search}")
        self._ef_search = ef_search

    def get_stats(self) -> IndexStats:
        """Structural snapshot: level distribution and base layer connectivity."""
        levels = Counter(node.level for node in self._nodes.values())
        degree_total = sum(len(node.neighbors[0]) for node in self._nodes.values())
        return IndexStats(
            node_count=len(self._nodes),
            max_layer=self._max_layer,
            entry_point=self._entry_point,
            nodes_per_level=dict(sorted(levels.items())),
            mean_layer0_degree=degree_total / len(self._nodes) if self._nodes else 0.0,
        )

    def dangling_references(self) -> List[Tuple[str, int, str]]:
        """
        Links pointing at nodes that no longer exist.

        These appear when a pruned one-way link outlives a deleted node.
        Returns (node_id, layer, missing_neighbor_id) triples.
        """
        dangling = []
        for node in self._nodes.values():
            for layer, links in enumerate(node.neighbors):
                for neighbor_id in links:
                    if neighbor_id not in self._nodes:
                        dangling.append((node.id, layer, neighbor_id))
        return dangling

    # Internals

    def _validate(self, vector: VectorLike) -> np.ndarray:
        arr = np.array(vector, dtype=np.float64)
        if arr.ndim != 1:
            raise DimensionMismatchError(self.name, self.dimensions, arr.shape)
        if arr.shape[0] != self.dimensions:
            raise DimensionMismatchError(self.name, self.dimensions, arr.shape[0])
        return arr

    def _random_level(self) -> int:
        # 1 - random() lies in (0, 1], so the log is always defined
        u = 1.0 - self._rng.random()
        return int(math.floor(-math.log(u) * self._ml))

    @staticmethod
    def _distance(a: np.ndarray, b: np.ndarray) -> float:
        return float(np.linalg.norm(a - b))

    def _distances(self, query: np.ndarray, node_ids: List[str]) -> np.ndarray:
        vectors = np.stack([self._nodes[node_id].vector for node_id in node_ids])
        return np.linalg.norm(vectors - query, axis=1)

    def _live_neighbors(self, node_id: str, layer: int) -> List[str]:
        node = self._nodes.get(node_id)
        if node is None or layer >= len(node.neighbors):
            return []
        return [neighbor_id for neighbor_id in node.neighbors[layer] if neighbor_id in self._nodes]

    def _greedy_closest(self, query: np.ndarray, entry_id: str, entry_dist: float,
                        layer: int) -> Tuple[str, float]:
        """Walk to closer neighbors on one layer until a local minimum is reached."""
        current, current_dist = entry_id, entry_dist

        while True:
            neighbor_ids = self._live_neighbors(current, layer)
            if not neighbor_ids:
                break

            dists = self._distances(query, neighbor_ids)
            best = int(np.argmin(dists))
            if dists[best] >= current_dist:
                break

            current, current_dist = neighbor_ids[best], float(dists[best])

        return current, current_dist

    def _search_layer(self, query: np.ndarray, entry_points: List[_Candidate], ef: int,
                      layer: int) -> List[_Candidate]:
        """
        Beam search on one layer.

        Returns up to ef (distance, id) pairs sorted closest first.
        """
        visited = {node_id for _, node_id in entry_points}

        # min-heap of nodes to expand
        candidates = list(entry_points)
        heapq.heapify(candidates)

        # max-heap (negated distance) of the best ef nodes found
        results = [(-dist, node_id) for dist, node_id in entry_points]
        heapq.heapify(results)

        while candidates:
            dist, current = heapq.heappop(candidates)

            if dist > -results[0][0] and len(results) >= ef:
                break

            node = self._nodes.get(current)
            if node is None or layer >= len(node.neighbors):
                continue

            fresh = []
            for neighbor_id in node.neighbors[layer]:
                if neighbor_id in visited:
                    continue
                visited.add(neighbor_id)
                if neighbor_id in self._nodes:
                    fresh.append(neighbor_id)

            if not fresh:
                continue

            for neighbor_dist, neighbor_id in zip(self._distances(query, fresh).tolist(), fresh):
                if len(results) < ef or neighbor_dist < -results[0][0]:
                    heapq.heappush(candidates, (neighbor_dist, neighbor_id))
                    heapq.heappush(results, (-neighbor_dist, neighbor_id))
                    if len(results) > ef:
                        heapq.heappop(results)

        return sorted((-neg_dist, node_id) for neg_dist, node_id in results)

    def _select_neighbors(self, candidates: List[_Candidate], max_connections: int) -> List[_Candidate]:
        """
        Pick up to max_connections neighbors with the diversity heuristic.

        A candidate is skipped when it lies closer to an already selected
        neighbor than to the new node. Remaining slots are filled with the
        closest skipped candidates.
        """
        if len(candidates) <= max_connections:
            return list(candidates)

        ordered = sorted(candidates)
        selected: List[_Candidate] = []
        selected_vectors: List[np.ndarray] = []

        for dist, candidate_id in ordered:
            if len(selected) >= max_connections:
                break

            vector = self._nodes[candidate_id].vector
            if selected_vectors:
                between = np.linalg.norm(np.stack(selected_vectors) - vector, axis=1)
                if bool((between < dist).any()):
                    continue

            selected.append((dist, candidate_id))
            selected_vectors.append(vector)

        if len(selected) < max_connections:
            chosen = {candidate_id for _, candidate_id in selected}
            for dist, candidate_id in ordered:
                if len(selected) >= max_connections:
                    break
                if candidate_id not in chosen:
                    selected.append((dist, candidate_id))

        return selected

    @staticmethod
    def _prune_connections(node: _Node, layer: int, max_connections: int) -> None:
        """Keep only the closest max_connections links, by cached distance."""
        links = node.neighbors[layer]
        if len(links) <= max_connections:
            return
        keep = heapq.nsmallest(max_connections, links.items(), key=lambda item: item[1])
        node.neighbors[layer] = dict(keep)

    def _elect_entry_point(self) -> None:
        """Promote the remaining node with the highest level. Linear scan."""
        new_entry: Optional[str] = None
        max_level = -1
        for node_id, node in self._nodes.items():
            if node.level > max_level:
                max_level = node.level
                new_entry = node_id

        logger.log_operation(
            "index.entry_point", "reelected",
            {"node_id": new_entry, "level": max_level},
            logging.DEBUG,
        )
        self._entry_point = new_entry
        self._max_layer = max_level
