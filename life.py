"""
  Life engine
  Conway's Game of Life (B3/S23) on a finite, bounded grid.

  The whole simulation state is a sparse set of alive coordinates. Each
  generation only evaluates the reachable set (alive cells plus their
  in-bounds neighbours); every other cell is dead before and after.

  The engine has no clock. A host drives it by calling advance_generation()
  and redraws whatever cells come back in the changed set.

  Coordinates map to a flat visual-instance index as  x * height + y,
  which is also the C-order of the dense (width, height) array returned
  by to_array().
"""

from __future__ import annotations

import operator
from typing import Iterable, NamedTuple

import numpy as np
from numpy.typing import NDArray
from scipy.ndimage import convolve as _convolve

# ── Neighbourhood ───────────────────────────────────────────────────────
# Moore neighbourhood: the eight cells around (0, 0)
NEIGHBOR_OFFSETS: tuple[tuple[int, int], ...] = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1),           (0, 1),
    (1, -1),  (1, 0),  (1, 1),
)

# Same neighbourhood as a convolution kernel, for the dense reference step
NEIGHBOR_KERNEL: NDArray = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.int16)

BIRTH: frozenset[int] = frozenset({3})
SURVIVAL: frozenset[int] = frozenset({2, 3})

# ── Pattern library ─────────────────────────────────────────────────────
# Offsets are (x, y) relative to the placement anchor.
PATTERNS: dict[str, list[tuple[int, int]]] = {
    "blinker": [(0, 0), (0, 1), (0, 2)],
    "block": [(0, 0), (0, 1), (1, 0), (1, 1)],
    "beehive": [(1, 0), (2, 0), (0, 1), (3, 1), (1, 2), (2, 2)],
    "toad": [(1, 0), (2, 0), (3, 0), (0, 1), (1, 1), (2, 1)],
    "beacon": [(0, 0), (1, 0), (0, 1), (3, 2), (2, 3), (3, 3)],
    "glider": [(1, 0), (2, 1), (0, 2), (1, 2), (2, 2)],
    "lwss": [
        (1, 0), (4, 0), (0, 1), (0, 2), (4, 2),
        (0, 3), (1, 3), (2, 3), (3, 3),
    ],
    "r_pentomino": [(1, 0), (2, 0), (0, 1), (1, 1), (1, 2)],
    "diehard": [(6, 0), (0, 1), (1, 1), (1, 2), (5, 2), (6, 2), (7, 2)],
    "pentadecathlon": [
        (1, 0), (1, 1), (0, 2), (2, 2), (1, 3), (1, 4),
        (1, 5), (1, 6), (0, 7), (2, 7), (1, 8), (1, 9),
    ],
}

STILL_LIFES = ["block", "beehive"]
OSCILLATORS = ["blinker", "toad", "beacon", "pentadecathlon"]
TRAVELLERS = ["glider", "lwss"]


class Coordinate(NamedTuple):
    """A grid cell. Compares and hashes like a plain (x, y) tuple."""
    x: int
    y: int


class Generation(NamedTuple):
    """Result of one transition.

    `changed` is the reachable set that was evaluated: a superset of the
    cells that actually flipped. Both sets are independent snapshots.
    """
    alive: frozenset[Coordinate]
    changed: frozenset[Coordinate]
    converged: bool


def _coord(cell: Iterable[int]) -> Coordinate:
    """Normalise a cell to a Coordinate. Non-integral components raise TypeError."""
    x, y = cell
    return Coordinate(operator.index(x), operator.index(y))


# ═══════════════════════════════════════════════════════════════════════
#  The engine
# ═══════════════════════════════════════════════════════════════════════

class LifeEngine:
    """
    Owns the grid dimensions, the set of alive cells and the full set of
    addressable cells. Not safe for concurrent mutation: the host
    serialises calls into advance_generation() and toggle_cell().
    """

    def __init__(
        self,
        width: int = 0,
        height: int = 0,
        alive: Iterable[tuple[int, int]] = (),
    ) -> None:
        self.width: int = 0
        self.height: int = 0
        self.generation: int = 0
        self._alive: set[Coordinate] = set()
        self._all_cells: frozenset[Coordinate] = frozenset()

        self.initialize(width, height)
        for cell in alive:
            self.toggle_cell(cell, True)

    # ── Setup ───────────────────────────────────────────────────────

    def initialize(self, width: int, height: int, clear: bool = False) -> None:
        """Set the dimensions and rebuild the full cell set.

        The alive set is kept as-is unless `clear` is given; this is a
        setup path normally run before any cell is toggled.
        """
        self.width = int(width)
        self.height = int(height)
        self._all_cells = frozenset(
            Coordinate(x, y)
            for x in range(max(self.width, 0))
            for y in range(max(self.height, 0))
        )
        if clear:
            self.clear()

    def clear(self) -> None:
        self._alive.clear()
        self.generation = 0

    @classmethod
    def from_array(cls, grid: NDArray) -> LifeEngine:
        """Build an engine from a dense (width, height) array, nonzero = alive."""
        arr = np.asarray(grid)
        if arr.ndim != 2:
            raise ValueError(f"expected a 2-D grid, got shape {arr.shape}")
        w, h = arr.shape
        xs, ys = np.nonzero(arr)
        return cls(w, h, zip(xs.tolist(), ys.tolist()))

    def place(
        self, name: str, x: int, y: int, rotation: int = 0
    ) -> frozenset[Coordinate]:
        """Stamp a named pattern with its anchor at (x, y).

        `rotation` counts quarter turns. Cells landing outside the grid are
        dropped. Returns the cells that were set alive.
        """
        cells = PATTERNS[name]
        placed: set[Coordinate] = set()
        for dx, dy in cells:
            for _ in range(rotation % 4):
                dx, dy = dy, -dx
            cell = Coordinate(x + dx, y + dy)
            if self.is_valid_cell(cell):
                self._alive.add(cell)
                placed.add(cell)
        return frozenset(placed)

    # ── Read-only views ─────────────────────────────────────────────

    @property
    def dimensions(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def alive_cells(self) -> frozenset[Coordinate]:
        return frozenset(self._alive)

    @property
    def all_cells(self) -> frozenset[Coordinate]:
        return self._all_cells

    def population(self) -> int:
        return len(self._alive)

    # ── Queries ─────────────────────────────────────────────────────

    def is_valid_cell(self, cell: tuple[int, int]) -> bool:
        x, y = _coord(cell)
        return 0 <= x < self.width and 0 <= y < self.height

    def is_alive_cell(self, cell: tuple[int, int]) -> bool:
        return _coord(cell) in self._alive

    def neighbor_coordinates(self, cell: tuple[int, int]) -> set[Coordinate]:
        """Valid Moore neighbours of `cell`; empty if `cell` is off-grid."""
        if not self.is_valid_cell(cell):
            return set()
        x, y = _coord(cell)
        return {
            Coordinate(x + dx, y + dy)
            for dx, dy in NEIGHBOR_OFFSETS
            if self.is_valid_cell((x + dx, y + dy))
        }

    def count_live_neighbors(self, cell: tuple[int, int]) -> int:
        return sum(1 for n in self.neighbor_coordinates(cell) if n in self._alive)

    def will_live_next_generation(self, cell: tuple[int, int]) -> bool:
        if not self.is_valid_cell(cell):
            return False
        n = self.count_live_neighbors(cell)
        if self.is_alive_cell(cell):
            return n in SURVIVAL
        return n in BIRTH

    def compute_reachable_set(self) -> set[Coordinate]:
        """Alive cells plus every valid neighbour of an alive cell."""
        reachable = set(self._alive)
        for cell in self._alive:
            reachable |= self.neighbor_coordinates(cell)
        return reachable

    def is_stale_state(self, next_alive: Iterable[tuple[int, int]]) -> bool:
        """True if `next_alive` is exactly the current alive set."""
        return {_coord(c) for c in next_alive} == self._alive

    # ── Mutation ────────────────────────────────────────────────────

    def advance_generation(self) -> Generation:
        """Advance one generation.

        Only the reachable set is evaluated, and it is returned whole as
        the changed set: it may include cells that did not flip, but it
        never misses one that did.
        """
        reachable = self.compute_reachable_set()
        next_alive = {c for c in reachable if self.will_live_next_generation(c)}
        converged = self.is_stale_state(next_alive)

        self._alive = next_alive
        self.generation += 1
        return Generation(
            alive=frozenset(next_alive),
            changed=frozenset(reachable),
            converged=converged,
        )

    def toggle_cell(self, cell: tuple[int, int], alive: bool) -> frozenset[Coordinate]:
        """Set one cell alive or dead. Not bounds-checked.

        An off-grid cell set alive is reported alive until the next
        generation, which never keeps it.
        """
        c = _coord(cell)
        if alive:
            self._alive.add(c)
        else:
            self._alive.discard(c)
        return frozenset({c})

    # ── Instance index mapping ──────────────────────────────────────

    def coordinate_to_index(self, cell: tuple[int, int]) -> int:
        x, y = _coord(cell)
        return x * self.height + y

    def index_to_coordinate(self, index: int) -> Coordinate:
        if self.height <= 0:
            raise ValueError(
                f"grid {self.width}x{self.height} has no instance indices"
            )
        x, y = divmod(operator.index(index), self.height)
        return Coordinate(x, y)

    # ── Dense view ──────────────────────────────────────────────────

    def to_array(self) -> NDArray[np.int8]:
        """Dense (width, height) int8 grid, 1 = alive. Off-grid cells are left out."""
        grid = np.zeros((max(self.width, 0), max(self.height, 0)), dtype=np.int8)
        for x, y in self._alive:
            if self.is_valid_cell((x, y)):
                grid[x, y] = 1
        return grid


# ═══════════════════════════════════════════════════════════════════════
#  Dense reference step
# ═══════════════════════════════════════════════════════════════════════

def dense_step(grid: NDArray) -> NDArray[np.int8]:
    """One B3/S23 generation on a dense array with dead cells past the edge."""
    g = np.asarray(grid)
    if g.size == 0:
        return np.zeros(g.shape, dtype=np.int8)
    alive = g != 0
    n = _convolve(alive.astype(np.int16), NEIGHBOR_KERNEL, mode="constant", cval=0)
    n_is_3 = n == 3
    birth = ~alive & n_is_3
    survive = alive & (n_is_3 | (n == 2))
    return (birth | survive).astype(np.int8)
