import json

import pytest

from errors import ConfigurationError
from population import Population
from rng import SimRandom
from world import GridWorld

GRID = 20


class EventLog:
    def __init__(self):
        self.events = []

    def __call__(self, kind, payload):
        self.events.append((kind, payload))

    def kinds(self):
        return [k for k, _ in self.events]


def make(size=3, seed=0, on_event=None, cores=10):
    rng = SimRandom(seed)
    world = GridWorld(GRID, cores, rng=rng)
    pop = Population(size, GRID, rng=rng, on_event=on_event)
    return world, pop


# ──────────────────────────────────────────────────────────────────────────────
# Roster
# ──────────────────────────────────────────────────────────────────────────────

def test_initial_roster():
    _, pop = make(size=4)
    assert len(pop.agents) == 4
    assert len({a.id for a in pop.agents}) == 4
    assert pop.generation == 0 and pop.total_deaths == 0
    assert all(a.grid_size == GRID for a in pop.agents)


def test_invalid_size():
    with pytest.raises(ConfigurationError):
        Population(0, GRID, rng=SimRandom(0))


def test_size_never_changes():
    world, pop = make(size=3, seed=5, cores=0)
    for i in range(30):
        if i % 7 == 0:
            pop.agents[i % 3].energy = 0.4
        world.step()
        pop.update(world, world.tick)
        assert len(pop.agents) == 3
        assert all(a is not None and a.energy > 0 for a in pop.agents)
    assert pop.total_deaths == 5


def test_all_agents_age_each_update():
    world, pop = make()
    for _ in range(3):
        world.step()
        pop.update(world, world.tick)
    assert [a.age for a in pop.agents] == [3, 3, 3]


# ──────────────────────────────────────────────────────────────────────────────
# Death & replacement
# ──────────────────────────────────────────────────────────────────────────────

def test_dead_agent_replaced_by_offspring_of_fittest():
    log = EventLog()
    world, pop = make(on_event=log)
    dying, best = pop.agents[0], pop.agents[2]
    dying.energy = 0.5
    best.age, best.fitness = 500, 500.0

    pop.update(world, 0)

    child = pop.agents[0]
    assert child is not dying
    assert child.age == 0 and child.energy == 100.0
    assert pop.total_deaths == 1 and pop.generation == 1
    assert pop.history[-1]["living_count"] == 3
    assert child.policy.calculate_similarity(best.policy) > 0.95
    assert log.kinds() == ["death", "birth", "mutation"]
    death, birth = log.events[0][1], log.events[1][1]
    assert death["id"] == dying.id and death["slot"] == 0
    assert birth["parent_id"] == best.id and birth["generation"] == 1


def test_best_ever_is_kept_on_death():
    world, pop = make()
    dying = pop.agents[1]
    dying.energy = 0.5
    pop.update(world, 0)
    assert pop.best_fitness_ever == 1.0
    assert pop.best_ever.id == dying.id
    assert pop.best_ever is not dying


def test_extinction_spawns_random_agent():
    log = EventLog()
    world, pop = make(size=1, on_event=log)
    pop.agents[0].energy = 0.5
    pop.update(world, 0)
    assert pop.agents[0].energy == 100.0
    assert log.kinds() == ["death", "birth"]
    assert log.events[1][1]["parent_id"] is None


def test_listener_failure_is_isolated(caplog):
    def broken(kind, payload):
        raise RuntimeError("listener down")

    world, pop = make(on_event=broken)
    pop.agents[0].energy = 0.5
    pop.update(world, 0)
    assert pop.total_deaths == 1
    assert len(pop.agents) == 3
    assert "event listener failed" in caplog.text


# ──────────────────────────────────────────────────────────────────────────────
# Forced evolution
# ──────────────────────────────────────────────────────────────────────────────

def test_force_evolution_replaces_weakest():
    log = EventLog()
    _, pop = make(on_event=log)
    for agent, fitness in zip(pop.agents, (5.0, 1.0, 9.0)):
        agent.fitness = fitness
    weak, strong = pop.agents[1], pop.agents[2]

    child = pop.force_evolution()

    assert pop.agents[1] is child
    assert child.id not in (weak.id, strong.id)
    assert pop.generation == 0 and pop.total_deaths == 0
    assert log.kinds() == ["forced_evolution"]
    payload = log.events[0][1]
    assert payload["replaced_id"] == weak.id and payload["parent_id"] == strong.id


def test_force_evolution_with_nobody_alive():
    _, pop = make()
    for agent in pop.agents:
        agent.energy = 0.0
    assert pop.force_evolution() is None
    assert pop.generation == 0


def test_set_evolution_parameters():
    _, pop = make()
    pop.set_evolution_parameters(0.3, 0.05)
    assert (pop.mutation_rate, pop.mutation_strength) == (0.3, 0.05)


# ──────────────────────────────────────────────────────────────────────────────
# Stats & trends
# ──────────────────────────────────────────────────────────────────────────────

def test_population_stats():
    _, pop = make()
    for agent, (energy, age) in zip(pop.agents, [(10.0, 1), (20.0, 2), (30.0, 3)]):
        agent.energy, agent.age, agent.fitness = energy, age, float(age)
    stats = pop.get_population_stats()
    assert stats["living_count"] == 3
    assert stats["total_energy"] == 60.0 and stats["average_energy"] == 20.0
    assert stats["average_age"] == 2.0
    assert stats["best_current_fitness"] == 3.0


def test_stats_with_nobody_alive():
    _, pop = make()
    for agent in pop.agents:
        agent.energy = 0.0
    stats = pop.get_population_stats()
    assert stats["living_count"] == 0
    assert stats["average_fitness"] == 0.0
    assert stats["best_current_fitness"] == 0.0


def test_history_is_bounded():
    _, pop = make()
    for tick in range(130):
        pop.record_stats(tick)
    assert len(pop.history) == 100
    assert pop.history[0]["tick"] == 30


def test_trends_need_history():
    _, pop = make()
    assert pop.get_evolution_trends() == {"fitness_improvement": 0.0,
                                          "survival_rate": 0.0,
                                          "population_stability": False}


def test_trends_compare_windows():
    _, pop = make()
    row = {"tick": 0, "generation": 0, "average_energy": 50.0, "best_fitness": 0.0}
    pop.history = ([dict(row, living_count=3, average_fitness=1.0)] * 10
                   + [dict(row, living_count=3, average_fitness=3.0)] * 10)
    trends = pop.get_evolution_trends()
    assert trends["fitness_improvement"] == 2.0
    assert trends["survival_rate"] == 1.0
    assert trends["population_stability"] is True


def test_reset_restores_fresh_roster():
    world, pop = make()
    old_ids = {a.id for a in pop.agents}
    pop.agents[0].energy = 0.5
    pop.update(world, 0)
    pop.reset()
    assert pop.generation == 0 and pop.total_deaths == 0
    assert pop.best_ever is None and pop.history == []
    assert not old_ids & {a.id for a in pop.agents}


def test_export_is_json_serialisable():
    world, pop = make()
    pop.agents[0].energy = 0.5
    pop.update(world, 0)
    state = json.loads(json.dumps(pop.export_population_state()))
    assert state["population_size"] == 3
    assert len(state["entities"]) == 3
    assert state["best_ever"]["age"] == 1
