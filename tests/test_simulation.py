import threading

import numpy as np

import simulation
from recorder import Recorder
from simulation import Simulation, CommandKind

SMALL = dict(grid_size=15, num_cores=8, population=3)


def fingerprint(sim):
    return (
        sim.world.tick,
        sim.world.temperature.copy(),
        [(a.id[:1], a.x, a.y, a.energy, a.age, a.fitness)
         for a in sim.population.agents],
        sim.population.total_deaths,
    )


def same(a, b):
    return (a[0] == b[0] and np.array_equal(a[1], b[1])
            and a[2] == b[2] and a[3] == b[3])


# ──────────────────────────────────────────────────────────────────────────────
# Determinism
# ──────────────────────────────────────────────────────────────────────────────

def test_same_seed_same_run():
    a, b = Simulation(seed=42, **SMALL), Simulation(seed=42, **SMALL)
    for _ in range(25):
        a.step()
        b.step()
    assert same(fingerprint(a), fingerprint(b))


def test_listeners_do_not_change_the_run(tmp_path, monkeypatch):
    monkeypatch.setattr(simulation, "POLICY_SNAPSHOT_INTERVAL", 5)
    recorder = Recorder(str(tmp_path))
    plain    = Simulation(seed=3, **SMALL)
    recorded = Simulation(seed=3, on_tick_callback=recorder.on_tick,
                          on_event_callback=recorder.on_event, **SMALL)
    for _ in range(20):
        plain.step()
        recorded.step()
    assert same(fingerprint(plain), fingerprint(recorded))
    assert len(recorder.all_stats) == 20


def test_step_returns_population_stats():
    sim = Simulation(seed=1, **SMALL)
    stats = sim.step()
    assert sim.steps == 1
    assert stats["living_count"] == 3
    assert sim.world.phase == "collect"


def test_long_run_with_default_policies():
    # energy falls under LOW_ENERGY after ~160 updates, so rewards kick in
    sim = Simulation(grid_size=20, num_cores=5, population=3, seed=7)
    for _ in range(250):
        stats = sim.step()
    assert sim.steps == 250
    assert len(sim.population.agents) == 3
    assert stats["living_count"] == 3


# ──────────────────────────────────────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────────────────────────────────────

def test_commands_wait_for_tick_boundary():
    sim = Simulation(seed=1, **SMALL)
    before = [a.id for a in sim.population.agents]
    sim.submit(CommandKind.FORCE_EVOLVE)
    assert [a.id for a in sim.population.agents] == before
    stats = sim.step()
    after = [a.id for a in sim.population.agents]
    assert sum(old != new for old, new in zip(before, after)) == 1
    assert stats["generation"] == 0
    assert stats["total_deaths"] == 0


def test_select_command():
    sim = Simulation(seed=1, **SMALL)
    target = sim.population.agents[1].id
    sim.submit("select", agent_id=target)
    sim.step()
    assert sim.selected_id == target
    assert sim.get_status()["selected"]["id"] == target


def test_set_mutation_command():
    sim = Simulation(seed=1, **SMALL)
    sim.submit("set_mutation", rate=0.3, strength=0.2)
    sim.step()
    assert sim.population.mutation_rate == 0.3
    assert sim.population.mutation_strength == 0.2


def test_reset_command():
    sim = Simulation(seed=1, **SMALL)
    for _ in range(6):
        sim.step()
    sim.submit("reset")
    sim.step()
    assert sim.steps == 1
    assert sim.world.tick == 0
    assert all(a.age == 1 for a in sim.population.agents)


def test_paused_run_advances_one_tick_per_step_command():
    sim = Simulation(seed=1, **SMALL)
    sim.submit("stop")
    sim.submit("step")
    sim.submit("step")
    stop = threading.Event()
    timer = threading.Timer(0.4, stop.set)
    timer.start()
    try:
        taken = sim.run(stop_event=stop)
    finally:
        timer.cancel()
    assert taken == 2
    assert sim.steps == 2
    assert sim.running is False


def test_run_bounded_by_max_steps():
    sim = Simulation(seed=1, **SMALL)
    assert sim.run(max_steps=4) == 4
    assert sim.steps == 4
    assert sim.session_stats["total_steps"] == 4
    assert sim.session_stats["longest_survival"] == 4


# ──────────────────────────────────────────────────────────────────────────────
# Listeners
# ──────────────────────────────────────────────────────────────────────────────

def test_failing_tick_listener_is_isolated(caplog):
    def broken(step, world, population):
        raise RuntimeError("renderer down")

    sim = Simulation(seed=1, on_tick_callback=broken, **SMALL)
    sim.step()
    sim.step()
    assert sim.steps == 2
    assert "tick listener failed" in caplog.text


def test_policy_snapshots(monkeypatch):
    monkeypatch.setattr(simulation, "POLICY_SNAPSHOT_INTERVAL", 2)
    events = []
    sim = Simulation(seed=1, on_event_callback=lambda k, p: events.append((k, p)),
                     **SMALL)
    for _ in range(4):
        sim.step()
    snaps = [p for k, p in events if k == "policy_snapshot"]
    assert [s["step"] for s in snaps] == [2, 4]
    best = sim.population.find_best_living()
    assert snaps[-1]["agent_id"] == best.id
    assert snaps[-1]["policy"]["architecture"]["layers"] == 4


def test_status_and_progress(capsys):
    sim = Simulation(seed=9, **SMALL)
    stats = sim.step()
    status = sim.get_status()
    assert status["steps"] == 1 and status["seed"] == 9
    assert status["selected"] is None
    sim.print_progress(stats, 0.5)
    assert "Step      1" in capsys.readouterr().out
