"""
GridLife – Main Entry Point
===========================

Usage examples:
  python main.py                           # default: 2000 steps, 5 agents
  python main.py --steps 5000 --pop 10     # longer run, bigger roster
  python main.py --grid 60 --cores 30      # smaller world
  python main.py --seed 7                  # reproducible run
  python main.py --mutation-rate 0         # no mutation (demonstration)
  python main.py --no-record               # skip CSV/JSON persistence
"""

import argparse
import logging
import os
import time

from simulation import Simulation
from recorder   import Recorder, load_stats
from visualizer import (ensure_dirs, save_world_snapshot,
                        save_evolution_chart, save_policy_diagram)
from config import (SAVE_DIR, SNAPSHOT_INTERVAL, POPULATION, MAX_STEPS,
                    GRID_SIZE, NUM_CORES, MUTATION_RATE, MUTATION_STRENGTH,
                    PROGRESS_INTERVAL, LOG_LEVEL)


# ──────────────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="GridLife – Artificial-Life Simulation")
    p.add_argument("--steps",      type=int,   default=MAX_STEPS,
                   help="Number of simulation steps to run")
    p.add_argument("--pop",        type=int,   default=POPULATION,
                   help="Population size (fixed)")
    p.add_argument("--grid",       type=int,   default=GRID_SIZE,
                   help="World width/height in cells")
    p.add_argument("--cores",      type=int,   default=NUM_CORES,
                   help="Number of cores in the world")
    p.add_argument("--mutation-rate",     type=float, default=MUTATION_RATE,
                   help="Probability each policy parameter mutates")
    p.add_argument("--mutation-strength", type=float, default=MUTATION_STRENGTH,
                   help="Std-dev of mutation noise")
    p.add_argument("--seed",       type=int,   default=None,
                   help="Random seed for reproducibility")
    p.add_argument("--outdir",     default=SAVE_DIR,
                   help="Output directory")
    p.add_argument("--snapshot-interval", type=int, default=SNAPSHOT_INTERVAL,
                   help="Save world snapshot every N steps (0 = never)")
    p.add_argument("--no-record",  action="store_true",
                   help="Do not write stats/events/policies to disk")
    p.add_argument("--verbose", "-v", action="store_true",
                   help="Log births and deaths")
    return p.parse_args(argv)


# ──────────────────────────────────────────────────────────────────────────────
# Callbacks
# ──────────────────────────────────────────────────────────────────────────────

class SimCallbacks:
    """Bundles the per-step callbacks used by the simulation."""

    def __init__(self, outdir: str, snapshot_interval: int,
                 recorder: Recorder = None):
        self.outdir            = outdir
        self.snapshot_interval = snapshot_interval
        self.recorder          = recorder

    def on_tick(self, step, world, population):
        if self.recorder is not None:
            self.recorder.on_tick(step, world, population)

        if self.snapshot_interval and step % self.snapshot_interval == 0:
            best = population.find_best_living()
            path = save_world_snapshot(world, population, step, self.outdir,
                                       selected_id=best.id if best else None)
            print(f"  → Snapshot: {path}")

            if best is not None:
                ppath = save_policy_diagram(best, step, "best", self.outdir)
                print(f"  → Policy diagram: {ppath}")

    def on_event(self, kind, payload):
        if self.recorder is not None:
            self.recorder.on_event(kind, payload)


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────

def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, LOG_LEVEL),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ensure_dirs(args.outdir)

    print("=" * 60)
    print("  GridLife – Artificial-Life Simulation")
    print("=" * 60)
    print(f"  Grid       : {args.grid} x {args.grid}, {args.cores} cores")
    print(f"  Population : {args.pop}")
    print(f"  Steps      : {args.steps}")
    print(f"  Mutation   : rate {args.mutation_rate}, "
          f"strength {args.mutation_strength}")
    print(f"  Seed       : {args.seed}")
    print(f"  Output dir : {args.outdir}")
    print("=" * 60)

    recorder = None if args.no_record else Recorder(args.outdir)
    cb = SimCallbacks(args.outdir, args.snapshot_interval, recorder)

    sim = Simulation(
        grid_size         = args.grid,
        num_cores         = args.cores,
        population        = args.pop,
        mutation_rate     = args.mutation_rate,
        mutation_strength = args.mutation_strength,
        seed              = args.seed,
        on_tick_callback  = cb.on_tick,
        on_event_callback = cb.on_event if recorder else None,
    )

    t0 = time.time()
    for _ in range(args.steps):
        stats = sim.step()
        if sim.steps % PROGRESS_INTERVAL == 0 or sim.steps <= 3:
            sim.print_progress(stats, time.time() - t0)

    print("\n=== Simulation complete ===")

    if recorder is not None and recorder.all_stats:
        print("\nSaving final evolution chart …")
        history = (load_stats(recorder.stats_path)
                   if os.path.isfile(recorder.stats_path) else recorder.all_stats)
        chart_path = save_evolution_chart(history, args.outdir,
                                          "evolution_final.png")
        print(f"  → {chart_path}")

    best = sim.population.find_best_living()
    snap = save_world_snapshot(sim.world, sim.population, sim.steps, args.outdir,
                               selected_id=best.id if best else None)
    print(f"  → Final snapshot: {snap}")

    print("\nDone! All outputs saved to:", os.path.abspath(args.outdir))
    return sim


if __name__ == "__main__":
    main()
