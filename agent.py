"""
Agent class for GridLife.

Each agent has:
  - (x, y) position on the toroidal grid
  - energy, age and the energy it has gathered so far
  - a NeuralPolicy deciding its moves
  - a bounded memory of recent experiences

Every update the agent:
  1. Pays its passive energy cost and eats whatever energy lies underneath
  2. Scans a 9x9 window of the world
  3. Remembers what it just experienced
  4. Nudges its policy with the recent rewards
  5. Samples a move from the policy and takes it
"""

import itertools
import logging
from dataclasses import dataclass, asdict

import numpy as np

from errors import ConfigurationError
from neural_network import NeuralPolicy
from rng import SimRandom
from config import (
    GRID_SIZE, INITIAL_ENERGY, ENERGY_DECAY, LOW_ENERGY, VISION_RADIUS,
    MEMORY_CAPACITY, MEMORY_RECALL, REWARD_WINDOW, REWARD_GAIN,
    REWARD_LOW_ENERGY, LEARNING_RATE, TIME_CYCLE, ACTION_LABELS,
    STAY_ACTION, INPUT_SIZE, NUM_ACTIONS, POLICY_SIZES,
    MUTATION_RATE, MUTATION_STRENGTH,
)

logger = logging.getLogger(__name__)

# (dx, dy) for up, down, left, right, stay
MOVES = [(0, -1), (0, 1), (-1, 0), (1, 0), (0, 0)]

FIELDS = ("field1", "field2", "field3", "field4", "field5")

_ids = itertools.count(1)


def _new_id() -> str:
    return f"A{next(_ids):05d}"


@dataclass
class Experience:
    tick: int
    x: int
    y: int
    field1: float
    field2: float
    field3: float
    field4: float
    field5: float
    confidence: float
    energy: float
    action: str
    outcome: str
    age: int


class Agent:
    """
    A single conscious entity in the simulation.
    """
    __slots__ = (
        "id", "x", "y", "grid_size", "rng", "policy",
        "energy", "age", "total_energy_gained", "fitness",
        "vision", "memory", "memory_capacity", "recent_outcomes",
        "last_action", "last_action_index",
        "_last_total_gained", "_energy_at_start", "_last_input",
    )

    def __init__(self, x: int = None, y: int = None,
                 policy: NeuralPolicy = None, grid_size: int = GRID_SIZE,
                 rng: SimRandom = None, memory_capacity: int = MEMORY_CAPACITY,
                 agent_id: str = None):
        self.rng       = rng if rng is not None else SimRandom()
        self.grid_size = grid_size
        self.x = x if x is not None else self.rng.integers(0, grid_size)
        self.y = y if y is not None else self.rng.integers(0, grid_size)

        self.policy = policy if policy is not None else NeuralPolicy(POLICY_SIZES, self.rng)
        if (self.policy.input_size != INPUT_SIZE
                or self.policy.output_size != NUM_ACTIONS):
            raise ConfigurationError(
                f"agent policies must map {INPUT_SIZE} inputs to "
                f"{NUM_ACTIONS} actions, got {self.policy.sizes}")

        self.id     = agent_id or _new_id()
        self.energy = INITIAL_ENERGY
        self.age    = 0
        self.total_energy_gained = 0.0
        self.fitness = 0.0

        self.vision = []
        self.memory = []
        self.memory_capacity = memory_capacity
        self.recent_outcomes = []               # [{action, reward, tick}]

        self.last_action       = "unknown"
        self.last_action_index = STAY_ACTION
        self._last_total_gained = 0.0
        self._energy_at_start   = self.energy
        self._last_input        = None          # input behind last_action

    @property
    def alive(self) -> bool:
        return self.energy > 0

    # ──────────────────────────────────────────────────────────────────────────
    # Perception
    # ──────────────────────────────────────────────────────────────────────────

    def update_vision(self, world, other_agents: list, tick: int = 0):
        """Sample every cell of the 9x9 window around the agent."""
        self.vision = []
        r = VISION_RADIUS
        for dx in range(-r, r + 1):
            for dy in range(-r, r + 1):
                x, y = self.x + dx, self.y + dy
                distance = abs(dx) + abs(dy)
                reading  = world.get_raw_physical_properties(
                    x, y, distance, self.energy)
                reading["field5"] = self.life_force(x, y, other_agents, tick)
                reading.update(relative_x=dx, relative_y=dy, distance=distance)
                self.vision.append(reading)

    def life_force(self, x: int, y: int, other_agents: list,
                   tick: int = 0) -> float:
        """Presence of other living agents within Manhattan distance 2."""
        if not (0 <= x < self.grid_size and 0 <= y < self.grid_size):
            return 0.0

        nearby = []
        for other in other_agents:
            if other is None or other is self or other.energy <= 0:
                continue
            d = abs(other.x - x) + abs(other.y - y)
            if d <= 2:
                nearby.append((other, d))
        if not nearby:
            return 0.0

        value = min(0.8, 0.2 * len(nearby))
        influence = sum((other.energy / 100.0) / (1 + d * 0.5)
                        for other, d in nearby)
        value += influence * 0.2
        value += np.sin((x * y + tick) * 0.1) * 0.05
        return float(max(0.0, min(1.0, value)))

    def current_observation(self) -> dict:
        """Reading of the agent's own cell (centre of the window)."""
        for point in self.vision:
            if point["distance"] == 0:
                return point
        return None

    # ──────────────────────────────────────────────────────────────────────────
    # Memory
    # ──────────────────────────────────────────────────────────────────────────

    def record_experience(self, tick: int):
        """Classify what happened this update and append it to memory."""
        observation = self.current_observation()
        if observation is None:
            return

        outcome = "moved"
        if self.total_energy_gained > self._last_total_gained:
            outcome = "energy_gained"
        elif self.energy < self._energy_at_start - ENERGY_DECAY - 1e-9:
            outcome = "energy_lost"

        self.memory.append(Experience(
            tick=tick, x=self.x, y=self.y,
            field1=observation["field1"], field2=observation["field2"],
            field3=observation["field3"], field4=observation["field4"],
            field5=observation["field5"],
            confidence=observation["confidence"],
            energy=self.energy, action=self.last_action,
            outcome=outcome, age=self.age,
        ))
        if len(self.memory) > self.memory_capacity:
            self.memory.pop(0)

        self._last_total_gained = self.total_energy_gained

    def memory_summary(self, tick: int) -> list:
        """Encode the most recent experiences, newest first, 10 values each."""
        summary = [0.0] * (MEMORY_RECALL * 10)
        recent  = self.memory[-MEMORY_RECALL:][::-1]
        for i, mem in enumerate(recent):
            base = i * 10
            summary[base]     = min(1.0, (tick - mem.tick) / TIME_CYCLE)
            summary[base + 1] = abs(self.x - mem.x) / self.grid_size
            summary[base + 2] = abs(self.y - mem.y) / self.grid_size
            summary[base + 3] = mem.field1
            summary[base + 4] = mem.field2
            summary[base + 5] = mem.field3
            summary[base + 6] = mem.field4
            summary[base + 7] = mem.field5
            summary[base + 8] = mem.confidence
            summary[base + 9] = (1.0 if mem.outcome == "energy_gained" else
                                 -1.0 if mem.outcome == "energy_lost" else 0.0)
        return summary

    # ──────────────────────────────────────────────────────────────────────────
    # Decision
    # ──────────────────────────────────────────────────────────────────────────

    def build_input_vector(self, tick: int) -> np.ndarray:
        """Flatten vision, confidences, internal state and memory (542 values)."""
        inputs = []
        for point in self.vision:
            inputs.extend(point[f] for f in FIELDS)
        inputs.extend(point["confidence"] for point in self.vision)

        cycle = (tick % TIME_CYCLE) / TIME_CYCLE
        inputs.append(self.energy / 100.0)
        inputs.append(self.x / self.grid_size)
        inputs.append(self.y / self.grid_size)
        inputs.append(np.sin(2 * np.pi * cycle))
        inputs.append(np.cos(2 * np.pi * cycle))
        inputs.append(cycle)

        inputs.extend(self.memory_summary(tick))

        vector = np.asarray(inputs, dtype=np.float64)
        if vector.size != INPUT_SIZE:
            raise ConfigurationError(
                f"input vector has {vector.size} values, expected {INPUT_SIZE}")
        return vector

    def decide(self, tick: int) -> int:
        """Sample an action index from the policy's distribution."""
        inputs = self.build_input_vector(tick)
        probs  = self.policy.forward(inputs)
        self._last_input = inputs

        draw = self.rng.random()
        cumulative = 0.0
        for i, p in enumerate(probs):
            cumulative += p
            if draw < cumulative:
                return i
        return STAY_ACTION

    def act(self, action_index: int):
        """Move one cell (or stay), wrapping around the grid edges."""
        dx, dy = MOVES[action_index]
        self.x = (self.x + dx) % self.grid_size
        self.y = (self.y + dy) % self.grid_size
        self.last_action       = ACTION_LABELS[action_index]
        self.last_action_index = action_index

    def learn(self):
        """Nudge the policy towards/away from the last action."""
        if not self.recent_outcomes or self._last_input is None:
            return
        avg_reward = (sum(o["reward"] for o in self.recent_outcomes)
                      / len(self.recent_outcomes))
        self.policy.apply_output_nudge(self._last_input, self.last_action_index,
                                       avg_reward, LEARNING_RATE)

    # ──────────────────────────────────────────────────────────────────────────

    def update(self, world, other_agents: list, tick: int) -> bool:
        """Execute one update: sense → remember → learn → act. Returns alive."""
        self._energy_at_start = self.energy
        self.energy -= ENERGY_DECAY

        gained = world.consume_energy(self.x, self.y)
        if gained > 0:
            self.energy += gained
            self.total_energy_gained += gained
            self.recent_outcomes.append(
                {"action": self.last_action_index, "reward": REWARD_GAIN,
                 "tick": tick})

        if self.energy < LOW_ENERGY:
            self.recent_outcomes.append(
                {"action": self.last_action_index, "reward": REWARD_LOW_ENERGY,
                 "tick": tick})

        self.recent_outcomes = [o for o in self.recent_outcomes
                                if tick - o["tick"] <= REWARD_WINDOW]

        self.update_vision(world, other_agents, tick)
        self.record_experience(tick)

        self.learn()
        self.act(self.decide(tick))

        self.age += 1
        self.fitness = self.age + self.total_energy_gained
        return self.energy > 0

    # ──────────────────────────────────────────────────────────────────────────
    # Reproduction
    # ──────────────────────────────────────────────────────────────────────────

    def reproduce(self, mutation_rate: float = MUTATION_RATE,
                  mutation_strength: float = MUTATION_STRENGTH) -> "Agent":
        """Offspring at a fresh random cell with a mutated copy of the policy."""
        return Agent(policy=self.policy.mutate(mutation_rate, mutation_strength),
                     grid_size=self.grid_size, rng=self.rng,
                     memory_capacity=self.memory_capacity)

    def clone(self) -> "Agent":
        """Full independent copy, used for best-ever snapshots."""
        copy = Agent(self.x, self.y, self.policy.clone(), self.grid_size,
                     self.rng, self.memory_capacity, agent_id=self.id)
        copy.energy = self.energy
        copy.age    = self.age
        copy.total_energy_gained = self.total_energy_gained
        copy.fitness = self.fitness
        copy.memory  = [Experience(**asdict(m)) for m in self.memory]
        copy.recent_outcomes = [dict(o) for o in self.recent_outcomes]
        copy.last_action       = self.last_action
        copy.last_action_index = self.last_action_index
        copy.vision = [dict(point) for point in self.vision]
        copy._last_total_gained = self._last_total_gained
        copy._energy_at_start   = self._energy_at_start
        copy._last_input = (self._last_input.copy()
                            if self._last_input is not None else None)
        return copy

    def get_status(self) -> dict:
        return {
            "id":                  self.id,
            "position":            {"x": self.x, "y": self.y},
            "energy":              self.energy,
            "age":                 self.age,
            "fitness":             self.fitness,
            "total_energy_gained": self.total_energy_gained,
            "memory_size":         len(self.memory),
            "recent_outcomes":     len(self.recent_outcomes),
            "last_action":         self.last_action,
        }
