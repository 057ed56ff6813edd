"""
Host side of the Life engine.

The engine only knows how to advance one generation. Everything a host
needs around it lives here:

  RunConfig       run limits, cycle window, logging cadence, instance spacing
  InstanceBuffer  one float per visual instance (1.0 alive, 0.0 dead),
                  addressed by the engine's coordinate → index mapping
  LifeRunner      Stopped → Running → Stopped; advances one generation per
                  tick() and stops itself on convergence
  StatsLogger     per-generation telemetry to CSV

There is no timer here either: whoever owns the loop decides how often
tick() is called.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import IO, ClassVar, Iterable

import numpy as np
from numpy.typing import NDArray

from life import Coordinate, LifeEngine

# ── Sparkline characters ────────────────────────────────────────────────
SPARKS = "▁▂▃▄▅▆▇█"


@dataclass
class RunConfig:
    max_generations: int = 1000
    stop_on_cycle: bool = False
    cycle_window: int = 30     # longest period looked for
    log_every: int = 10        # generations between routine log rows
    cell_step: float = 100.0   # instance spacing in world units

    def __post_init__(self) -> None:
        if self.max_generations < 0:
            raise ValueError(f"max_generations must be >= 0, got {self.max_generations}")
        if self.cycle_window < 1:
            raise ValueError(f"cycle_window must be >= 1, got {self.cycle_window}")
        if self.log_every < 0:
            raise ValueError(f"log_every must be >= 0 (0 = events only), got {self.log_every}")


# ═══════════════════════════════════════════════════════════════════════
#  Stats logger
# ═══════════════════════════════════════════════════════════════════════

class StatsLogger:
    """Writes run telemetry to CSV for post-hoc inspection."""

    HEADER: ClassVar[str] = "gen,time_s,population,reachable,cycle_period,event\n"

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    def open(self) -> None:
        try:
            self._fh = open(self._path, "w")
            self._fh.write(self.HEADER)
            self._fh.flush()
        except OSError:
            self._fh = None

    def log(
        self,
        gen: int,
        pop: int,
        reachable: int,
        cycle: int,
        event: str = "",
    ) -> None:
        if self._fh is None:
            return
        t = time.monotonic() - self._t0
        self._fh.write(f"{gen},{t:.3f},{pop},{reachable},{cycle},{event}\n")
        # Flush on events or periodically
        if event or gen % 50 == 0:
            try:
                self._fh.flush()
            except OSError:
                pass

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None


# ═══════════════════════════════════════════════════════════════════════
#  Visual instances
# ═══════════════════════════════════════════════════════════════════════

class InstanceBuffer:
    """Per-instance custom data for a flattened grid of cell instances.

    Instance i sits at engine.index_to_coordinate(i). Only cells handed to
    update() are rewritten, so after each generation the host passes in the
    changed set and nothing else.

    The engine may be reinitialized to another size at any time; the buffer
    reallocates and rewrites every instance the next time it is touched.
    """

    def __init__(self, engine: LifeEngine, step: float = 100.0) -> None:
        self.engine = engine
        self.step = step
        self._dims: tuple[int, int] = engine.dimensions
        self.values: NDArray[np.float32] = np.zeros(
            len(engine.all_cells), dtype=np.float32
        )
        self.writes: int = 0

    def _sync_size(self) -> bool:
        """Reallocate when the engine grid changed shape. True if it did."""
        if self.engine.dimensions == self._dims:
            return False
        self._dims = self.engine.dimensions
        self.values = np.zeros(len(self.engine.all_cells), dtype=np.float32)
        return True

    def update(self, cells: Iterable[tuple[int, int]]) -> int:
        """Rewrite the alive/dead value of each cell; returns cells written.

        Cells outside the grid have no instance and are skipped. After a
        resize every instance is stale, so all of them are rewritten.
        """
        engine = self.engine
        if self._sync_size():
            cells = engine.all_cells
        written = 0
        for cell in cells:
            if not engine.is_valid_cell(cell):
                continue
            idx = engine.coordinate_to_index(cell)
            self.values[idx] = 1.0 if engine.is_alive_cell(cell) else 0.0
            written += 1
        self.writes += written
        return written

    def refresh_all(self) -> int:
        return self.update(self.engine.all_cells)

    def transforms(self) -> NDArray[np.float32]:
        """(N, 3) instance positions (x * step, y * step, 0) in index order."""
        if self._sync_size():
            self.refresh_all()
        n = len(self.values)
        out = np.zeros((n, 3), dtype=np.float32)
        if n == 0:
            return out
        idx = np.arange(n)
        xs, ys = np.divmod(idx, self.engine.height)
        out[:, 0] = xs * self.step
        out[:, 1] = ys * self.step
        return out

    def as_grid(self) -> NDArray[np.float32]:
        """Values reshaped to the engine's (width, height) layout."""
        if self._sync_size():
            self.refresh_all()
        return self.values.reshape(
            max(self.engine.width, 0), max(self.engine.height, 0)
        )


# ═══════════════════════════════════════════════════════════════════════
#  Runner
# ═══════════════════════════════════════════════════════════════════════

class LifeRunner:
    """
    Drives a LifeEngine one generation per tick().

    The runner is either stopped or running. start() moves it to running
    and refreshes every instance; a generation that changes nothing moves
    it back to stopped. A cycle of period 1..cycle_window is reported in
    cycle_period, and also stops the run when config.stop_on_cycle is set.
    """

    def __init__(
        self,
        engine: LifeEngine,
        config: RunConfig | None = None,
        logger: StatsLogger | None = None,
    ) -> None:
        self.engine = engine
        self.config = config if config is not None else RunConfig()
        self.logger = logger
        self.buffer = InstanceBuffer(engine, step=self.config.cell_step)

        self._running: bool = False
        self.cycle_period: int = 0
        self.last_event: str = ""
        self.last_changed: frozenset[Coordinate] = frozenset()

        self.pop_history: deque[int] = deque(maxlen=500)
        self._state_history: deque[frozenset[Coordinate]] = deque(
            maxlen=self.config.cycle_window + 1
        )

    @property
    def is_running(self) -> bool:
        return self._running

    # ── State machine ───────────────────────────────────────────────

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.cycle_period = 0
        self._state_history.clear()
        self._state_history.append(self.engine.alive_cells)
        self.buffer.refresh_all()
        self._log("start")

    def stop(self, event: str = "stop") -> None:
        if not self._running:
            return
        self._running = False
        self.last_event = event
        self._log(event)

    # ── Driving ─────────────────────────────────────────────────────

    def tick(self) -> str:
        """Advance one generation. Returns event string (empty if none)."""
        if not self._running:
            return ""

        result = self.engine.advance_generation()
        self.last_changed = result.changed
        self.buffer.update(result.changed)
        self.pop_history.append(len(result.alive))

        self._state_history.append(result.alive)
        self.cycle_period = self._detect_cycle()

        event = ""
        if result.converged:
            event = "converged"
        elif self.cycle_period > 0 and self.config.stop_on_cycle:
            event = f"cycle(period={self.cycle_period})"

        if event:
            self.stop(event)
        elif (
            self.logger is not None
            and self.config.log_every > 0
            and self.engine.generation % self.config.log_every == 0
        ):
            self._log()
        return event

    def run(self, max_generations: int | None = None) -> int:
        """Start and tick until stopped or the limit is hit.

        Returns the number of generations advanced.
        """
        limit = self.config.max_generations if max_generations is None else max_generations
        self.start()
        advanced = 0
        while self._running and advanced < limit:
            self.tick()
            advanced += 1
        self.stop("limit")
        return advanced

    def toggle(self, cell: tuple[int, int], alive: bool) -> None:
        changed = self.engine.toggle_cell(cell, alive)
        self.buffer.update(changed)

    # ── Telemetry ───────────────────────────────────────────────────

    def _detect_cycle(self) -> int:
        """Smallest period p such that the state p generations ago equals now."""
        sh_len = len(self._state_history)
        if sh_len < 2:
            return 0
        latest = self._state_history[-1]
        for period in range(1, sh_len):
            if self._state_history[-(period + 1)] == latest:
                return period
        return 0

    def _log(self, event: str = "") -> None:
        if self.logger is None:
            return
        self.logger.log(
            gen=self.engine.generation,
            pop=self.engine.population(),
            reachable=len(self.last_changed),
            cycle=self.cycle_period,
            event=event,
        )

    def sparkline(self, width: int = 24) -> str:
        ph_len = len(self.pop_history)
        if ph_len < 2:
            return ""
        start = max(0, ph_len - width)
        window = [self.pop_history[i] for i in range(start, ph_len)]
        lo, hi = min(window), max(window)
        n_sparks = len(SPARKS) - 1
        if hi == lo:
            return SPARKS[len(SPARKS) // 2] * len(window)
        return "".join(SPARKS[int((v - lo) / (hi - lo) * n_sparks)] for v in window)
