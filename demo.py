"""
Quick demo – runs a short seeded simulation on a small world
and saves snapshots, charts and logs without needing a display.
"""
import os

from simulation import Simulation
from recorder import Recorder, load_stats
from visualizer import (ensure_dirs, save_world_snapshot,
                        save_evolution_chart, save_policy_diagram)

OUT = "output/demo"
ensure_dirs(OUT)

recorder = Recorder(OUT)

def on_tick(step, world, population):
    recorder.on_tick(step, world, population)
    if step % 100 == 0:
        print(f"  Saving snapshot step {step}...")
        best = population.find_best_living()
        save_world_snapshot(world, population, step, OUT,
                            selected_id=best.id if best else None)
        if best is not None:
            save_policy_diagram(best, step, "best", OUT)

sim = Simulation(
    grid_size         = 40,
    num_cores         = 20,
    population        = 5,
    mutation_rate     = 0.1,
    mutation_strength = 0.1,
    seed              = 42,
    on_tick_callback  = on_tick,
    on_event_callback = recorder.on_event,
)
sim.run(max_steps=400)
save_evolution_chart(load_stats(recorder.stats_path), OUT, "demo_chart.png")

stats = sim.population.get_population_stats()
print(f"\nDeaths: {stats['total_deaths']}  "
      f"best fitness ever: {stats['best_all_time_fitness']:.1f}")
print("All outputs in:", OUT)
for root, dirs, files in os.walk(OUT):
    for f in files:
        print(f"  {os.path.join(root, f)}")
