"""
World Grid for GridLife.

The world is a toroidal N×N grid made of two layers:
  lower layer : temperature waves, lower catalyser, cores and energies
  upper layer : catalyser density that feeds the lower layer

Every step the temperature drifts one cell east and diffuses, catalyser is
exchanged between the layers (emit / collect alternate, one tick per pair),
and cores advance through dormant → incubated → bloomed → dormant. A bloom
leaves a short-lived energy manifestation that agents can eat.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from errors import ConfigurationError
from rng import SimRandom
from config import (
    GRID_SIZE, NUM_CORES, TEMP_WAVES, TEMP_INIT_NOISE, TEMP_DIFFUSION,
    TEMP_STEP_NOISE, CATALYSER_UPPER_MAX, CATALYSER_UPPER_DECAY,
    CORE_INCUBATION_CATALYSER, CORE_BLOOM_TEMPERATURE, CORE_BLOOM_STEPS,
    CORE_BLOOM_DURATION, CORE_CATALYSER_RELEASE, CORE_MOVE_DELAY,
    CORE_STATE_VALUES, ENERGY_LIFETIME, ENERGY_REWARD,
    CONFIDENCE_BY_DISTANCE, CONFIDENCE_FALLBACK, INITIAL_ENERGY,
)

logger = logging.getLogger(__name__)

DORMANT   = "dormant"
INCUBATED = "incubated"
BLOOMED   = "bloomed"

# 8 neighbouring offsets (dx, dy)
NEIGHBOURS = [(-1, -1), (0, -1), (1, -1),
              (-1,  0),          (1,  0),
              (-1,  1), (0,  1), (1,  1)]


@dataclass
class Core:
    id: int
    x: int
    y: int
    state: str = DORMANT
    consecutive_high_temp: int = 0
    bloom_tick: int = 0
    pending_move_tick: Optional[int] = None


@dataclass
class Energy:
    x: int
    y: int
    created_tick: int
    core_id: int
    active: bool = True


def _neighbourhood_sum(field: np.ndarray, wrap: bool,
                       include_centre: bool) -> np.ndarray:
    """Sum of each cell's 3x3 neighbourhood (toroidal or zero-padded)."""
    padded = np.pad(field, 1, mode="wrap" if wrap else "constant")
    n, m = field.shape
    total = np.zeros_like(field)
    for dx in (-1, 0, 1):
        for dy in (-1, 0, 1):
            if dx == 0 and dy == 0 and not include_centre:
                continue
            total += padded[1 + dx:1 + dx + n, 1 + dy:1 + dy + m]
    return total


class GridWorld:
    """
    Owns the physical substrate and every mutation of it.
    """

    def __init__(self, size: int = GRID_SIZE, num_cores: int = NUM_CORES,
                 rng: SimRandom = None, seed: int = None):
        if int(size) < 1:
            raise ConfigurationError(f"grid size must be >= 1, got {size}")
        if int(num_cores) < 0:
            raise ConfigurationError(
                f"core count must be >= 0, got {num_cores}")
        self.size      = int(size)
        self.num_cores = int(num_cores)
        self.rng       = rng if rng is not None else SimRandom(seed)
        self.reset()

    # ──────────────────────────────────────────────────────────────────────────
    # Initialisation
    # ──────────────────────────────────────────────────────────────────────────

    def reset(self):
        """Regenerate every field, re-seed the cores and clear energies."""
        n = self.size
        self.tick  = 0
        self.phase = "emit"
        self.temperature     = self._generate_temperature()
        self.catalyser_lower = np.zeros((n, n), dtype=np.float64)
        self.catalyser_upper = self.rng.random((n, n)) * CATALYSER_UPPER_MAX
        self.cores = [
            Core(id=i,
                 x=self.rng.integers(0, n),
                 y=self.rng.integers(0, n))
            for i in range(self.num_cores)
        ]
        self.energies = []

    def _generate_temperature(self) -> np.ndarray:
        """Superpose the configured sine waves, add noise, map into 0..1."""
        n  = self.size
        xs = np.arange(n, dtype=np.float64)[:, None]
        ys = np.arange(n, dtype=np.float64)[None, :]
        coords = {"x": xs, "y": ys, "xy": xs + ys}
        temp = np.zeros((n, n), dtype=np.float64)
        for axis, wavelength, amplitude in TEMP_WAVES:
            temp = temp + np.sin(coords[axis] * 2 * np.pi / wavelength) * amplitude
        temp += (self.rng.random((n, n)) - 0.5) * TEMP_INIT_NOISE
        return np.clip((temp + 1.0) / 2.0, 0.0, 1.0)

    # ──────────────────────────────────────────────────────────────────────────
    # Stepping
    # ──────────────────────────────────────────────────────────────────────────

    def step(self):
        """Advance the physics by one emit or collect half-tick."""
        self._apply_pending_moves()
        self._shift_temperature()

        if self.phase == "emit":
            self._emit()
            self.phase = "collect"
        else:
            self._collect()
            self.phase = "emit"
            self.tick += 1

        self._update_cores()
        self._expire_energies()

    def _shift_temperature(self):
        """Drift the field one cell along x, then diffuse and jitter it."""
        shifted = np.roll(self.temperature, 1, axis=0)
        neighbour_avg = _neighbourhood_sum(shifted, wrap=True,
                                           include_centre=False) / 8.0
        diffused = shifted * (1 - TEMP_DIFFUSION) + neighbour_avg * TEMP_DIFFUSION
        diffused += (self.rng.random(shifted.shape) - 0.5) * TEMP_STEP_NOISE
        self.temperature = np.clip(diffused, 0.0, 1.0)

    def _emit(self):
        """Upper layer rains catalyser into the lower layer and decays."""
        self.catalyser_lower += self.catalyser_upper
        self.catalyser_upper *= CATALYSER_UPPER_DECAY

    def _collect(self):
        """
        Lift every lower-layer deposit back up, spreading it over the 3x3
        neighbourhood in proportion to the upper density already there.
        Deposits with no upper density around them are lost.
        """
        lower, upper = self.catalyser_lower, self.catalyser_upper
        density = _neighbourhood_sum(upper, wrap=False, include_centre=True)
        share = np.zeros_like(lower)
        np.divide(lower, density, out=share,
                  where=(lower > 0) & (density > 0))
        collected = upper * _neighbourhood_sum(share, wrap=False,
                                               include_centre=True)
        self.catalyser_lower = np.zeros_like(lower)
        self.catalyser_upper = np.minimum(upper + collected,
                                          CATALYSER_UPPER_MAX)

    # ──────────────────────────────────────────────────────────────────────────
    # Cores
    # ──────────────────────────────────────────────────────────────────────────

    def _apply_pending_moves(self):
        for core in self.cores:
            if (core.pending_move_tick is not None
                    and self.tick >= core.pending_move_tick):
                self._move_core(core)
                core.pending_move_tick = None

    def _update_cores(self):
        """Run the dormant → incubated → bloomed → dormant state machine."""
        for core in self.cores:
            catalyser   = self.catalyser_lower[core.x, core.y]
            temperature = self.temperature[core.x, core.y]

            if core.state == DORMANT and catalyser > CORE_INCUBATION_CATALYSER:
                core.state = INCUBATED
                core.consecutive_high_temp = 0

            if core.state == INCUBATED:
                if temperature > CORE_BLOOM_TEMPERATURE:
                    core.consecutive_high_temp += 1
                    if core.consecutive_high_temp >= CORE_BLOOM_STEPS:
                        core.state      = BLOOMED
                        core.bloom_tick = self.tick
                        self.energies.append(
                            Energy(core.x, core.y, self.tick, core.id))
                        logger.debug("core %d bloomed at (%d, %d) tick %d",
                                     core.id, core.x, core.y, self.tick)
                else:
                    core.consecutive_high_temp = 0

            elif (core.state == BLOOMED
                  and self.tick - core.bloom_tick >= CORE_BLOOM_DURATION):
                core.state = DORMANT
                core.consecutive_high_temp = 0
                self.catalyser_lower[core.x, core.y] += CORE_CATALYSER_RELEASE
                self._move_core(core)

    def _move_core(self, core: Core):
        """Relocate a core to a random neighbouring cell (toroidal)."""
        dx, dy = NEIGHBOURS[self.rng.choice_index(len(NEIGHBOURS))]
        core.x = (core.x + dx) % self.size
        core.y = (core.y + dy) % self.size

    def _schedule_core_move(self, core_id: int, delay: int = CORE_MOVE_DELAY):
        for core in self.cores:
            if core.id == core_id:
                core.pending_move_tick = self.tick + delay
                return

    def _expire_energies(self):
        kept = []
        for energy in self.energies:
            if self.tick - energy.created_tick >= ENERGY_LIFETIME:
                energy.active = False
            else:
                kept.append(energy)
        self.energies = kept

    # ──────────────────────────────────────────────────────────────────────────
    # Sensing (used by agents)
    # ──────────────────────────────────────────────────────────────────────────

    def core_at(self, x: int, y: int) -> Optional[Core]:
        for core in self.cores:
            if core.x == x and core.y == y:
                return core
        return None

    def has_energy(self, x: int, y: int) -> bool:
        return any(e.active and e.x == x and e.y == y for e in self.energies)

    def get_raw_physical_properties(self, x: int, y: int, distance: int = 0,
                                    observer_energy: float = INITIAL_ENERGY) -> dict:
        """
        Raw sensory reading of one cell.

        Returns five fields in 0..1 and a confidence that falls with
        Manhattan distance and with the observer's own energy. Low
        confidence adds proportional noise. field5 (life force) is left at
        zero; the observing agent fills it in. Cells off the grid read as
        all zeros with zero confidence.
        """
        if not self._in_bounds(x, y):
            return {"field1": 0.0, "field2": 0.0, "field3": 0.0,
                    "field4": 0.0, "field5": 0.0, "confidence": 0.0}

        temp      = float(self.temperature[x, y])
        catalyser = float(self.catalyser_lower[x, y])
        core      = self.core_at(x, y)
        core_val  = CORE_STATE_VALUES[core.state if core else "none"]
        energy    = 1.0 if self.has_energy(x, y) else 0.0
        t = self.tick

        field1 = (temp * 0.7 + catalyser * 0.3) * (1 + np.sin(t * 0.1) * 0.1)
        field2 = (core_val * 0.6 + temp * catalyser * 0.4) + np.cos(t * 0.05) * 0.1
        field3 = temp * catalyser * (1 + core_val) + energy * 0.8
        field3 += np.sin((x + y + t) * 0.1) * 0.1
        field4 = temp * 0.5 + catalyser * 0.3 + core_val * 0.2
        field5 = 0.0

        # Spatial context from in-bounds neighbours
        influence, count = 0.0, 0
        for dx, dy in NEIGHBOURS:
            nx, ny = x + dx, y + dy
            if self._in_bounds(nx, ny):
                influence += (self.temperature[nx, ny]
                              + self.catalyser_lower[nx, ny])
                count += 1
        if count:
            field4 += (influence / count) * 0.2

        base = CONFIDENCE_BY_DISTANCE.get(distance, CONFIDENCE_FALLBACK)
        energy_mult = max(0.1, min(1.0, observer_energy / 100.0))
        confidence  = base * energy_mult

        fields = [field1, field2, field3, field4, field5]
        if confidence < 1.0:
            noise = (1 - confidence) * 0.2 + (1 - energy_mult) * 0.3
            jitter = (self.rng.random(5) - 0.5) * noise
            fields = [f + j for f, j in zip(fields, jitter)]

        reading = {f"field{i + 1}": float(min(1.0, max(0.0, f)))
                   for i, f in enumerate(fields)}
        reading["confidence"] = float(confidence)
        return reading

    def consume_energy(self, x: int, y: int) -> float:
        """Eat the active manifestation at (x, y); returns the energy gained."""
        for i, energy in enumerate(self.energies):
            if energy.active and energy.x == x and energy.y == y:
                self._schedule_core_move(energy.core_id)
                del self.energies[i]
                return ENERGY_REWARD
        return 0

    # ──────────────────────────────────────────────────────────────────────────
    # Read-only views for collaborators
    # ──────────────────────────────────────────────────────────────────────────

    def get_world_state(self) -> dict:
        counts = {DORMANT: 0, INCUBATED: 0, BLOOMED: 0}
        for core in self.cores:
            counts[core.state] += 1
        return {
            "tick":            self.tick,
            "phase":           self.phase,
            "cores":           len(self.cores),
            "energies":        len(self.energies),
            "active_energies": sum(1 for e in self.energies if e.active),
            "core_states":     counts,
        }

    def snapshot(self) -> dict:
        """
        Copies of the fields plus core/energy descriptors for renderers.
        Mutating the result never touches the world.
        """
        return {
            "tick":            self.tick,
            "phase":           self.phase,
            "temperature":     self.temperature.copy(),
            "catalyser_lower": self.catalyser_lower.copy(),
            "catalyser_upper": self.catalyser_upper.copy(),
            "cores":    [{"id": c.id, "x": c.x, "y": c.y, "state": c.state}
                         for c in self.cores],
            "energies": [{"x": e.x, "y": e.y, "created_tick": e.created_tick,
                          "core_id": e.core_id}
                         for e in self.energies if e.active],
        }

    # ──────────────────────────────────────────────────────────────────────────

    def _in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.size and 0 <= y < self.size
