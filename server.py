"""
GridLife Server  –  Flask + Server-Sent Events
==============================================

Endpoints:
  POST /start         Start (or restart) a simulation with JSON config body
  POST /stop          Pause the running simulation
  POST /resume        Resume a paused simulation
  POST /step          Advance exactly one tick (while paused)
  POST /force-evolve  Replace the weakest agent with the strongest's offspring
  POST /reset         Reset world and population
  POST /select        Select an agent by id for detailed status
  POST /mutation      Change mutation rate/strength
  POST /shutdown      Stop the simulation thread
  GET  /status        Current sim state as JSON
  GET  /world         Latest published world snapshot
  GET  /population    Latest published population export
  GET  /stream        SSE stream – browser subscribes here for live data

Every control request becomes a command on the simulation's queue; the
simulation thread applies it between ticks. Reads are served from the
snapshot the simulation thread published after its last tick.

Run:
  python server.py
  # → http://localhost:5000
"""

import json
import logging
import queue
import threading

from flask import Flask, Response, request, jsonify

from simulation import Simulation, CommandKind
from config import (
    GRID_SIZE, NUM_CORES, POPULATION, MUTATION_RATE, MUTATION_STRENGTH,
    MAX_STEPS, TICK_RATE,
)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
app = Flask(__name__)

# Global simulation state
_sim:         Simulation | None = None
_sim_thread:  threading.Thread | None = None
_stop_event   = threading.Event()
_tick_queue   = queue.Queue(maxsize=200)   # holds dicts to stream
_latest       = {"world": None, "population": None}
_sim_status   = {
    "running":   False,
    "step":      0,
    "max_steps": 0,
    "cfg":       {},
}
_status_lock  = threading.Lock()


# ──────────────────────────────────────────────────────────────────────────────
# CORS helper – allow a browser front-end on any origin to call us
# ──────────────────────────────────────────────────────────────────────────────

@app.after_request
def add_cors(response):
    response.headers["Access-Control-Allow-Origin"]  = "*"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    return response

@app.route("/", methods=["OPTIONS"])
@app.route("/<path:p>", methods=["OPTIONS"])
def preflight(p=""):
    return Response(status=200)


# ──────────────────────────────────────────────────────────────────────────────
# Simulation thread
# ──────────────────────────────────────────────────────────────────────────────

def _build_cfg(data: dict) -> dict:
    """Merge request JSON with defaults."""
    seed = data.get("seed")
    rate = data.get("tickRate", TICK_RATE)
    return {
        "grid_size":         int(data.get("gridSize",         GRID_SIZE)),
        "num_cores":         int(data.get("numCores",         NUM_CORES)),
        "population":        int(data.get("population",       POPULATION)),
        "max_steps":         int(data.get("maxSteps",         MAX_STEPS)),
        "mutation_rate":     float(data.get("mutationRate",     MUTATION_RATE)),
        "mutation_strength": float(data.get("mutationStrength", MUTATION_STRENGTH)),
        "tick_rate":         float(rate) if rate else None,
        "seed":              int(seed) if seed is not None else None,
    }


def _tick_payload(step: int, world, population) -> dict:
    snap = world.snapshot()
    return {
        "type":     "tick",
        "step":     step,
        "world":    world.get_world_state(),
        "stats":    population.get_population_stats(),
        "cores":    snap["cores"],
        "energies": snap["energies"],
        "agents": [
            {"id": a.id, "x": a.x, "y": a.y, "energy": round(a.energy, 2),
             "fitness": round(a.fitness, 2), "lastAction": a.last_action}
            for a in population.get_living_entities()
        ],
    }


def _publish(payload: dict, out_q: queue.Queue):
    # Non-blocking put; drop oldest frame if queue full
    if out_q.full():
        try:
            out_q.get_nowait()
        except queue.Empty:
            pass
    try:
        out_q.put_nowait(payload)
    except queue.Full:
        logger.debug("stream queue full, dropping step %s", payload.get("step"))


def _sim_worker(sim: Simulation, cfg: dict, stop_evt: threading.Event,
                out_q: queue.Queue):
    """Run the simulation in a background thread; push each tick into queue."""

    def on_tick(step, world, population):
        payload = _tick_payload(step, world, population)
        with _status_lock:
            _sim_status["step"]    = step
            _sim_status["running"] = sim.running
            _latest["world"]       = payload
            _latest["population"]  = population.export_population_state()
        _publish(payload, out_q)

    def on_event(kind, payload):
        if kind != "policy_snapshot":
            _publish({"type": "event", "event": kind, **payload}, out_q)

    sim.on_tick_callback  = on_tick
    sim.on_event_callback = on_event

    with _status_lock:
        _sim_status["running"] = True

    try:
        sim.run(max_steps=cfg["max_steps"], stop_event=stop_evt)
    finally:
        with _status_lock:
            _sim_status["running"] = False
        _publish({"type": "done", "step": sim.steps}, out_q)


def _stop_current():
    _stop_event.set()
    if _sim_thread and _sim_thread.is_alive():
        _sim_thread.join(timeout=3)


# ──────────────────────────────────────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────────────────────────────────────

@app.route("/start", methods=["POST"])
def start():
    global _sim, _sim_thread, _stop_event, _tick_queue

    # Stop any running sim
    _stop_current()

    # Reset
    _stop_event = threading.Event()
    _tick_queue = queue.Queue(maxsize=200)

    cfg = _build_cfg(request.get_json(force=True, silent=True) or {})
    _sim = Simulation(
        grid_size         = cfg["grid_size"],
        num_cores         = cfg["num_cores"],
        population        = cfg["population"],
        mutation_rate     = cfg["mutation_rate"],
        mutation_strength = cfg["mutation_strength"],
        seed              = cfg["seed"],
        tick_rate         = cfg["tick_rate"],
    )
    with _status_lock:
        _sim_status["cfg"]       = cfg
        _sim_status["max_steps"] = cfg["max_steps"]
        _sim_status["step"]      = 0
        _latest["world"]      = None
        _latest["population"] = None

    _sim_thread = threading.Thread(
        target=_sim_worker,
        args=(_sim, cfg, _stop_event, _tick_queue),
        daemon=True,
    )
    _sim_thread.start()
    return jsonify({"status": "started", "cfg": cfg})


def _command(kind: CommandKind, **payload):
    if _sim is None:
        return jsonify({"error": "no simulation has been started"}), 409
    _sim.submit(kind, **payload)
    return jsonify({"status": "queued", "command": kind.value})


@app.route("/stop", methods=["POST"])
def stop():
    return _command(CommandKind.STOP)


@app.route("/resume", methods=["POST"])
def resume():
    return _command(CommandKind.START)


@app.route("/step", methods=["POST"])
def step_one():
    return _command(CommandKind.STEP)


@app.route("/force-evolve", methods=["POST"])
def force_evolve():
    return _command(CommandKind.FORCE_EVOLVE)


@app.route("/reset", methods=["POST"])
def reset():
    return _command(CommandKind.RESET)


@app.route("/select", methods=["POST"])
def select():
    data = request.get_json(force=True, silent=True) or {}
    return _command(CommandKind.SELECT, agent_id=data.get("agentId"))


@app.route("/mutation", methods=["POST"])
def mutation():
    data = request.get_json(force=True, silent=True) or {}
    payload = {}
    if "rate" in data:
        payload["rate"] = float(data["rate"])
    if "strength" in data:
        payload["strength"] = float(data["strength"])
    return _command(CommandKind.SET_MUTATION, **payload)


@app.route("/shutdown", methods=["POST"])
def shutdown():
    _stop_current()
    return jsonify({"status": "stopped"})


@app.route("/status", methods=["GET"])
def status():
    with _status_lock:
        return jsonify(dict(_sim_status))


@app.route("/world", methods=["GET"])
def world_state():
    with _status_lock:
        payload = _latest["world"]
    if payload is None:
        return jsonify({"error": "no tick has been published yet"}), 404
    return jsonify(payload)


@app.route("/population", methods=["GET"])
def population_state():
    with _status_lock:
        payload = _latest["population"]
    if payload is None:
        return jsonify({"error": "no tick has been published yet"}), 404
    return jsonify(payload)


@app.route("/stream", methods=["GET"])
def stream():
    """SSE endpoint – browser subscribes and receives each tick as an event."""
    out_q = _tick_queue

    def event_gen():
        # Send a hello so the browser knows it's connected
        yield "data: {\"type\": \"connected\"}\n\n"

        while True:
            try:
                payload = out_q.get(timeout=1)
                yield f"data: {json.dumps(payload)}\n\n"
                if payload.get("type") == "done":
                    break
            except queue.Empty:
                # Keep-alive ping
                yield "data: {\"type\": \"ping\"}\n\n"

    return Response(
        event_gen(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",    # disable nginx buffering if behind proxy
        },
    )


# ──────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("=" * 50)
    print("  GridLife Server  →  http://localhost:5000")
    print("  SSE stream       →  http://localhost:5000/stream")
    print("=" * 50)
    app.run(host="0.0.0.0", port=5000, threaded=True, debug=False)
