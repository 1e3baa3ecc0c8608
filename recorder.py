"""
Recorder for GridLife – the optional persistence collaborator.

Subscribes to a Simulation's listener hooks and writes:
  1. stats_log.csv    – one row of world + population stats per step
  2. events.jsonl     – births, deaths, mutations, forced evolutions
  3. policies/*.json  – periodic snapshots of the best living policy

Write failures are logged and dropped; they never reach the tick loop.
"""

import csv
import json
import logging
import os

from config import RECORDER_MEMORY

logger = logging.getLogger(__name__)

STATS_FIELDS = [
    "step", "tick", "phase", "living_count", "average_energy", "average_age",
    "average_fitness", "best_current_fitness", "best_all_time_fitness",
    "generation", "total_deaths", "active_energies",
    "dormant", "incubated", "bloomed",
]


class Recorder:
    """Bundles the per-step and per-event callbacks used by the simulation."""

    def __init__(self, outdir: str, policy_dir: str = "policies",
                 memory: int = RECORDER_MEMORY):
        self.outdir      = outdir
        self.policy_dir  = os.path.join(outdir, policy_dir)
        self.stats_path  = os.path.join(outdir, "stats_log.csv")
        self.events_path = os.path.join(outdir, "events.jsonl")
        self.all_stats   = []        # newest rows only; the CSV has them all
        self.memory      = memory
        os.makedirs(self.policy_dir, exist_ok=True)

    # ──────────────────────────────────────────────────────────────────────────

    def on_tick(self, step: int, world, population):
        state = world.get_world_state()
        stats = population.get_population_stats()
        row = {
            "step":  step,
            "tick":  state["tick"],
            "phase": state["phase"],
            "active_energies": state["active_energies"],
            **state["core_states"],
            **{k: stats[k] for k in STATS_FIELDS if k in stats},
        }
        self.all_stats.append(row)
        if len(self.all_stats) > self.memory:
            self.all_stats.pop(0)
        try:
            self._append_csv(row)
        except OSError:
            logger.exception("could not write stats row for step %d", step)

    def on_event(self, kind: str, payload: dict):
        try:
            if kind == "policy_snapshot":
                self._save_policy(payload)
            else:
                self._append_event(kind, payload)
        except (OSError, TypeError, ValueError):
            logger.exception("could not record %r event", kind)

    # ──────────────────────────────────────────────────────────────────────────

    def _append_csv(self, row: dict):
        file_exists = os.path.isfile(self.stats_path)
        with open(self.stats_path, "a", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=STATS_FIELDS)
            if not file_exists:
                writer.writeheader()
            writer.writerow(row)

    def _append_event(self, kind: str, payload: dict):
        with open(self.events_path, "a") as f:
            f.write(json.dumps({"event": kind, **payload}) + "\n")

    def _save_policy(self, payload: dict):
        path = os.path.join(self.policy_dir, f"step_{payload['step']:06d}.json")
        with open(path, "w") as f:
            json.dump(payload, f)
        return path


def load_events(path: str) -> list:
    """Read an events.jsonl file back into a list of dicts."""
    with open(path) as f:
        return [json.loads(line) for line in f if line.strip()]


def load_stats(path: str) -> list:
    """Read a stats_log.csv back into rows with numeric values restored."""
    rows = []
    with open(path, newline="") as f:
        for raw in csv.DictReader(f):
            row = {}
            for key, value in raw.items():
                if key == "phase" or value in (None, ""):
                    row[key] = value
                else:
                    number = float(value)
                    row[key] = int(number) if number.is_integer() else number
            rows.append(row)
    return rows
