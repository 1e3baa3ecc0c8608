"""
Population Manager for GridLife.

Steady-state evolution over a fixed arena of agent slots:
  for each update:
    1. Every living agent updates (senses, learns, acts)
    2. An agent that runs out of energy is replaced on the spot by a
       mutated offspring of the fittest living agent (or a random newcomer
       if nobody is left), in the same slot
    3. Aggregate stats are recorded for trend analysis

There are no generational batches: each death produces exactly one birth,
so the roster size never changes.
"""

import logging
import time

from agent import Agent
from errors import ConfigurationError
from rng import SimRandom
from config import (
    POPULATION, GRID_SIZE, MUTATION_RATE, MUTATION_STRENGTH,
    STATS_HISTORY, TREND_WINDOW,
)

logger = logging.getLogger(__name__)


class Population:
    """
    Fixed-size roster of agents indexed 0..size-1.
    """

    def __init__(
        self,
        size:              int   = POPULATION,
        grid_size:         int   = GRID_SIZE,
        rng:               SimRandom = None,
        mutation_rate:     float = MUTATION_RATE,
        mutation_strength: float = MUTATION_STRENGTH,
        on_event           = None,    # called as on_event(kind, payload)
    ):
        if int(size) < 1:
            raise ConfigurationError(f"population size must be >= 1, got {size}")
        self.size              = int(size)
        self.grid_size         = grid_size
        self.rng               = rng if rng is not None else SimRandom()
        self.mutation_rate     = mutation_rate
        self.mutation_strength = mutation_strength
        self.on_event          = on_event
        self.reset()

    # ──────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def reset(self):
        """Reinitialise the whole roster and every counter."""
        self.generation        = 0
        self.total_deaths      = 0
        self.best_fitness_ever = 0.0
        self.best_ever         = None     # clone of the best agent that died
        self.history           = []       # aggregate stats, one per update
        self.agents = [self._random_agent() for _ in range(self.size)]

    def _random_agent(self) -> Agent:
        return Agent(grid_size=self.grid_size, rng=self.rng)

    def set_evolution_parameters(self, mutation_rate: float,
                                 mutation_strength: float):
        self.mutation_rate     = mutation_rate
        self.mutation_strength = mutation_strength

    # ──────────────────────────────────────────────────────────────────────────
    # Per-tick update
    # ──────────────────────────────────────────────────────────────────────────

    def update(self, world, tick: int):
        """
        Update every living slot; replace the dead synchronously.

        The neighbour list is taken once, before anyone moves. A newborn
        takes its slot at once and counts as living in this tick's stats,
        but first acts on the next update.
        """
        living = self.get_living_entities()

        for i in range(len(self.agents)):
            agent = self.agents[i]
            if agent is None or agent.energy <= 0:
                continue
            if not agent.update(world, living, tick):
                self._handle_death(i, tick)

        self.record_stats(tick)

    def _handle_death(self, index: int, tick: int):
        dead = self.agents[index]

        self.total_deaths += 1
        if dead.fitness > self.best_fitness_ever:
            self.best_fitness_ever = dead.fitness
            self.best_ever = dead.clone()

        logger.debug("agent %s died: age %d, gained %.1f, fitness %.1f",
                     dead.id, dead.age, dead.total_energy_gained, dead.fitness)
        self._emit("death", {"tick": tick, "slot": index,
                             "cause": "energy_depletion", **dead.get_status()})

        parent = self.find_best_living()
        if parent is not None:
            child = parent.reproduce(self.mutation_rate, self.mutation_strength)
        else:
            child = self._random_agent()

        self.agents[index] = child
        self.generation += 1
        self._announce_birth(child, parent, index, tick)

    def _announce_birth(self, child: Agent, parent, index: int, tick: int):
        parent_id = parent.id if parent is not None else None
        logger.debug("agent %s born in slot %d (parent %s)", child.id, index,
                     parent_id)
        self._emit("birth", {"tick": tick, "slot": index,
                             "generation": self.generation,
                             "parent_id": parent_id, **child.get_status()})
        if parent is not None:
            self._emit("mutation", {
                "tick": tick, "agent_id": child.id, "parent_id": parent_id,
                "mutation_rate": self.mutation_rate,
                "mutation_strength": self.mutation_strength,
            })

    def _emit(self, kind: str, payload: dict):
        """Fire-and-forget notification; listener failures stay out here."""
        if self.on_event is None:
            return
        try:
            self.on_event(kind, payload)
        except Exception:
            logger.exception("event listener failed on %r", kind)

    # ──────────────────────────────────────────────────────────────────────────
    # Selection helpers
    # ──────────────────────────────────────────────────────────────────────────

    def find_best_living(self):
        """Living agent with the highest fitness (first one wins ties)."""
        best = None
        for agent in self.agents:
            if agent is not None and agent.energy > 0:
                if best is None or agent.fitness > best.fitness:
                    best = agent
        return best

    def get_living_entities(self) -> list:
        return [a for a in self.agents if a is not None and a.energy > 0]

    def force_evolution(self):
        """
        Replace the weakest living agent with an offspring of the
        strongest, regardless of energy. Neither generation nor total_deaths
        moves.
        """
        weakest_idx, strongest = None, None
        for i, agent in enumerate(self.agents):
            if agent is None or agent.energy <= 0:
                continue
            if weakest_idx is None or agent.fitness < self.agents[weakest_idx].fitness:
                weakest_idx = i
            if strongest is None or agent.fitness > strongest.fitness:
                strongest = agent

        if weakest_idx is None:
            return None

        weakest = self.agents[weakest_idx]
        child = strongest.reproduce(self.mutation_rate, self.mutation_strength)
        self.agents[weakest_idx] = child
        logger.info("forced evolution: replaced %s (fitness %.1f) with "
                    "offspring of %s (fitness %.1f)", weakest.id,
                    weakest.fitness, strongest.id, strongest.fitness)
        self._emit("forced_evolution", {
            "slot": weakest_idx, "replaced_id": weakest.id,
            "replaced_fitness": weakest.fitness, "parent_id": strongest.id,
            "parent_fitness": strongest.fitness, "agent_id": child.id,
        })
        return child

    # ──────────────────────────────────────────────────────────────────────────
    # Stats
    # ──────────────────────────────────────────────────────────────────────────

    def get_population_stats(self) -> dict:
        living = self.get_living_entities()
        n = len(living)
        total_energy  = sum(a.energy for a in living)
        total_age     = sum(a.age for a in living)
        total_fitness = sum(a.fitness for a in living)
        return {
            "living_count":          n,
            "total_energy":          total_energy,
            "total_age":             total_age,
            "total_fitness":         total_fitness,
            "average_energy":        total_energy / n if n else 0.0,
            "average_age":           total_age / n if n else 0.0,
            "average_fitness":       total_fitness / n if n else 0.0,
            "best_current_fitness":  max((a.fitness for a in living), default=0.0),
            "generation":            self.generation,
            "total_deaths":          self.total_deaths,
            "best_all_time_fitness": self.best_fitness_ever,
        }

    def get_entity_details(self) -> list:
        return [{"index": i, "alive": a is not None and a.energy > 0,
                 **(a.get_status() if a is not None else {})}
                for i, a in enumerate(self.agents)]

    def record_stats(self, tick: int):
        stats = self.get_population_stats()
        self.history.append({
            "tick":            tick,
            "generation":      stats["generation"],
            "living_count":    stats["living_count"],
            "average_energy":  stats["average_energy"],
            "average_fitness": stats["average_fitness"],
            "best_fitness":    stats["best_current_fitness"],
        })
        if len(self.history) > STATS_HISTORY:
            self.history.pop(0)

    def get_evolution_trends(self) -> dict:
        """Compare the latest TREND_WINDOW records with the window before."""
        empty = {"fitness_improvement": 0.0, "survival_rate": 0.0,
                 "population_stability": False}
        if len(self.history) < 2:
            return empty
        recent = self.history[-TREND_WINDOW:]
        older  = self.history[-2 * TREND_WINDOW:-TREND_WINDOW]
        if not older:
            return empty

        def _mean(rows, key):
            return sum(r[key] for r in rows) / len(rows)

        recent_living = _mean(recent, "living_count")
        older_living  = _mean(older, "living_count")
        return {
            "fitness_improvement": (_mean(recent, "average_fitness")
                                    - _mean(older, "average_fitness")),
            "survival_rate":        recent_living / self.size,
            "population_stability": abs(recent_living - older_living) < 1,
        }

    def export_population_state(self) -> dict:
        return {
            "timestamp":          time.time(),
            "population_size":    self.size,
            "generation":         self.generation,
            "total_deaths":       self.total_deaths,
            "best_fitness":       self.best_fitness_ever,
            "mutation_rate":      self.mutation_rate,
            "mutation_strength":  self.mutation_strength,
            "entities":           self.get_entity_details(),
            "stats":              self.get_population_stats(),
            "trends":             self.get_evolution_trends(),
            "generation_history": self.history[-2 * TREND_WINDOW:],
            "best_ever":          (self.best_ever.get_status()
                                   if self.best_ever is not None else None),
        }
