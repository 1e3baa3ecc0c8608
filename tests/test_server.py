import queue

import pytest

import server


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(server, "_sim", None)
    monkeypatch.setattr(server, "_latest", {"world": None, "population": None})
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c
    server._stop_current()


def wait_for_worker():
    server._sim_thread.join(timeout=30)
    assert not server._sim_thread.is_alive()


def test_commands_need_a_simulation(client):
    for route in ("/stop", "/resume", "/step", "/force-evolve", "/reset",
                  "/select", "/mutation"):
        assert client.post(route).status_code == 409


def test_reads_before_first_tick(client):
    assert client.get("/world").status_code == 404
    assert client.get("/population").status_code == 404
    assert "running" in client.get("/status").get_json()


def test_build_cfg_defaults_and_overrides():
    cfg = server._build_cfg({"gridSize": "30", "seed": 5, "tickRate": 0})
    assert cfg["grid_size"] == 30
    assert cfg["seed"] == 5
    assert cfg["tick_rate"] is None
    assert server._build_cfg({})["seed"] is None


def test_start_runs_and_publishes(client):
    resp = client.post("/start", json={"gridSize": 15, "numCores": 5,
                                       "population": 2, "maxSteps": 3,
                                       "seed": 1})
    assert resp.get_json()["status"] == "started"
    wait_for_worker()

    world = client.get("/world").get_json()
    assert world["step"] == 3
    assert len(world["agents"]) == 2

    population = client.get("/population").get_json()
    assert population["population_size"] == 2

    status = client.get("/status").get_json()
    assert status["step"] == 3 and status["running"] is False
    assert status["cfg"]["grid_size"] == 15


def test_commands_are_queued(client):
    client.post("/start", json={"gridSize": 15, "numCores": 5,
                                "population": 2, "maxSteps": 1, "seed": 1})
    wait_for_worker()
    resp = client.post("/mutation", json={"rate": 0.5})
    assert resp.get_json() == {"status": "queued", "command": "set_mutation"}
    server._sim.step()
    assert server._sim.population.mutation_rate == 0.5


def test_publish_drops_oldest_frame():
    q = queue.Queue(maxsize=2)
    for step in range(3):
        server._publish({"step": step}, q)
    assert [q.get_nowait()["step"] for _ in range(2)] == [1, 2]
