"""
Simulation Engine for GridLife.

Orchestrates the continuous evolutionary loop:
  for each step:
    1. Apply queued control commands (tick boundary only)
    2. Advance the world physics by one step
    3. Update the population (deaths are replaced immediately)
    4. Notify listeners (telemetry, persistence, rendering)

Hosts talk to a running simulation only through submit(); the loop drains
those commands between ticks so nothing changes state mid-tick.
"""

import logging
import queue
import time
from dataclasses import dataclass, field
from enum import Enum

from population import Population
from rng import SimRandom
from world import GridWorld
from config import (
    GRID_SIZE, NUM_CORES, POPULATION, MUTATION_RATE, MUTATION_STRENGTH,
    TICK_RATE, POLICY_SNAPSHOT_INTERVAL,
)

logger = logging.getLogger(__name__)


class CommandKind(Enum):
    START        = "start"
    STOP         = "stop"
    STEP         = "step"
    SELECT       = "select"
    FORCE_EVOLVE = "force_evolve"
    RESET        = "reset"
    SET_MUTATION = "set_mutation"


@dataclass
class Command:
    kind: CommandKind
    payload: dict = field(default_factory=dict)


class Simulation:
    """
    Main simulation controller.
    """

    def __init__(
        self,
        grid_size:         int   = GRID_SIZE,
        num_cores:         int   = NUM_CORES,
        population:        int   = POPULATION,
        mutation_rate:     float = MUTATION_RATE,
        mutation_strength: float = MUTATION_STRENGTH,
        seed:              int   = None,
        tick_rate:         float = TICK_RATE,
        on_tick_callback   = None,    # called after every step
        on_event_callback  = None,    # birth/death/mutation/policy snapshots
    ):
        self.rng        = SimRandom(seed)
        self.world      = GridWorld(grid_size, num_cores, rng=self.rng)
        self.population = Population(
            population, grid_size, rng=self.rng,
            mutation_rate=mutation_rate, mutation_strength=mutation_strength,
            on_event=self._forward_event,
        )
        self.tick_rate         = tick_rate
        self.on_tick_callback  = on_tick_callback
        self.on_event_callback = on_event_callback

        self.commands    = queue.Queue()
        self.running     = False
        self.steps       = 0
        self.selected_id = None
        self.session_stats = self._fresh_session_stats()

    @staticmethod
    def _fresh_session_stats() -> dict:
        return {"start_time": time.time(), "total_steps": 0,
                "total_generations": 0, "peak_fitness": 0.0,
                "longest_survival": 0}

    # ──────────────────────────────────────────────────────────────────────────
    # Commands
    # ──────────────────────────────────────────────────────────────────────────

    def submit(self, kind, **payload):
        """Queue a control command; safe to call from any thread."""
        self.commands.put(Command(CommandKind(kind), payload))

    def _drain_commands(self) -> bool:
        """
        Apply pending commands in order. Stops at a STEP (returns True) so
        each STEP buys exactly one tick; the rest wait for the next boundary.
        """
        while True:
            try:
                cmd = self.commands.get_nowait()
            except queue.Empty:
                return False
            if self._apply(cmd):
                return True

    def _apply(self, cmd: Command) -> bool:
        kind = cmd.kind
        if kind is CommandKind.START:
            self.running = True
        elif kind is CommandKind.STOP:
            self.running = False
        elif kind is CommandKind.STEP:
            return True
        elif kind is CommandKind.SELECT:
            self.selected_id = cmd.payload.get("agent_id")
        elif kind is CommandKind.FORCE_EVOLVE:
            self.population.force_evolution()
        elif kind is CommandKind.RESET:
            self.reset()
        elif kind is CommandKind.SET_MUTATION:
            self.population.set_evolution_parameters(
                float(cmd.payload.get("rate", self.population.mutation_rate)),
                float(cmd.payload.get("strength",
                                      self.population.mutation_strength)))
        return False

    # ──────────────────────────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────────────────────────

    def step(self) -> dict:
        """Apply pending commands, then advance exactly one tick."""
        self._drain_commands()
        return self._tick()

    def run(self, max_steps: int = None, stop_event=None) -> int:
        """
        Step until max_steps is reached or stop_event is set.

        STOP pauses the loop (it keeps waiting for commands); START resumes
        it and STEP advances one tick while paused.
        """
        self.running = True
        taken = 0
        while max_steps is None or taken < max_steps:
            if stop_event is not None and stop_event.is_set():
                break
            step_requested = self._drain_commands()
            if not (self.running or step_requested):
                if not self._wait_for_command():
                    continue

            t0 = time.time()
            self._tick()
            taken += 1

            if self.tick_rate:
                delay = 1.0 / self.tick_rate - (time.time() - t0)
                if delay > 0:
                    time.sleep(delay)
        return taken

    def _wait_for_command(self, timeout: float = 0.1) -> bool:
        """Block while paused; we are between ticks, so apply what arrives."""
        try:
            cmd = self.commands.get(timeout=timeout)
        except queue.Empty:
            return False
        return self._apply(cmd)

    def reset(self):
        self.world.reset()
        self.population.reset()
        self.steps = 0
        self.selected_id = None
        self.session_stats = self._fresh_session_stats()
        logger.info("simulation reset")

    # ──────────────────────────────────────────────────────────────────────────
    # One tick
    # ──────────────────────────────────────────────────────────────────────────

    def _tick(self) -> dict:
        self.world.step()
        self.population.update(self.world, self.world.tick)
        self.steps += 1

        stats = self.population.get_population_stats()
        self._update_session_stats(stats)

        if (self.on_event_callback is not None
                and self.steps % POLICY_SNAPSHOT_INTERVAL == 0):
            self._snapshot_policy(stats)

        if self.on_tick_callback is not None:
            try:
                self.on_tick_callback(self.steps, self.world, self.population)
            except Exception:
                logger.exception("tick listener failed at step %d", self.steps)
        return stats

    def _update_session_stats(self, stats: dict):
        s = self.session_stats
        s["total_steps"]       = self.steps
        s["total_generations"] = stats["generation"]
        s["peak_fitness"] = max(s["peak_fitness"], stats["best_all_time_fitness"],
                                stats["best_current_fitness"])
        living = self.population.get_living_entities()
        if living:
            s["longest_survival"] = max(s["longest_survival"],
                                        max(a.age for a in living))

    def _snapshot_policy(self, stats: dict):
        best = self.population.find_best_living()
        if best is None:
            return
        self._forward_event("policy_snapshot", {
            "step":       self.steps,
            "tick":       self.world.tick,
            "generation": stats["generation"],
            "agent_id":   best.id,
            "fitness":    best.fitness,
            "policy":     best.policy.serialize(),
        })

    def _forward_event(self, kind: str, payload: dict):
        if self.on_event_callback is None:
            return
        try:
            self.on_event_callback(kind, payload)
        except Exception:
            logger.exception("event listener failed on %r", kind)

    # ──────────────────────────────────────────────────────────────────────────
    # Status
    # ──────────────────────────────────────────────────────────────────────────

    def selected_agent(self):
        for agent in self.population.get_living_entities():
            if agent.id == self.selected_id:
                return agent
        return None

    def get_status(self) -> dict:
        selected = self.selected_agent()
        return {
            "running":       self.running,
            "steps":         self.steps,
            "tick":          self.world.tick,
            "tick_rate":     self.tick_rate,
            "seed":          self.rng.seed,
            "session_stats": dict(self.session_stats),
            "selected":      selected.get_status() if selected else None,
        }

    def print_progress(self, stats: dict, elapsed: float):
        print(
            f"Step {self.steps:>6}  |  tick {self.world.tick:>5}  |  "
            f"living {stats['living_count']}/{self.population.size}  |  "
            f"avg fitness {stats['average_fitness']:>7.1f}  |  "
            f"best ever {stats['best_all_time_fitness']:>7.1f}  |  "
            f"deaths {stats['total_deaths']:>4}  |  "
            f"{elapsed:.2f}s"
        )
