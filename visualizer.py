"""
Visualizer for GridLife.

Produces:
  1. World snapshots  – temperature heatmap with catalyser, cores, energies
                        and agents overlaid
  2. Evolution chart  – living agents + fitness + deaths over steps
  3. Policy diagrams  – per-layer weight distributions of one agent's policy

Only reads simulation state; never mutates it.
"""

import os

import numpy as np
import matplotlib
matplotlib.use("Agg")          # non-interactive backend (no display needed)
import matplotlib.pyplot as plt

from config import SAVE_DIR

CORE_COLORS = {
    "dormant":   "#888888",
    "incubated": "#FFAA00",
    "bloomed":   "#FF44CC",
}


# ──────────────────────────────────────────────────────────────────────────────
# Directory setup
# ──────────────────────────────────────────────────────────────────────────────

def ensure_dirs(base: str = SAVE_DIR):
    for sub in ("snapshots", "charts", "policies"):
        os.makedirs(os.path.join(base, sub), exist_ok=True)


def _dark_axes(ax, fig):
    ax.set_facecolor("#111111")
    fig.patch.set_facecolor("#111111")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444444")


def agent_color(agent) -> tuple:
    """Colour agents by their policy so relatives look alike."""
    out = agent.policy.layers[-1].biases
    rgb = (np.tanh(out[:3] * 10) + 1) / 2
    return tuple(float(max(0.2, c)) for c in rgb)


# ──────────────────────────────────────────────────────────────────────────────
# World snapshot
# ──────────────────────────────────────────────────────────────────────────────

def save_world_snapshot(world, population, step: int, base: str = SAVE_DIR,
                        selected_id: str = None):
    """
    Render the current world as a heatmap.
    The selected agent (if any) is highlighted with a white ring.
    """
    snap = world.snapshot()
    n = world.size

    fig, ax = plt.subplots(figsize=(6, 6), dpi=100)
    _dark_axes(ax, fig)
    stats = population.get_population_stats()
    ax.set_title(f"Step {step}  tick {snap['tick']}  "
                 f"({stats['living_count']} living, gen {stats['generation']})",
                 color="white", fontsize=10)

    # Arrays are indexed [x, y]; imshow wants rows = y
    ax.imshow(snap["temperature"].T, cmap="inferno", origin="lower",
              vmin=0, vmax=1, extent=(-0.5, n - 0.5, -0.5, n - 0.5))
    ax.imshow(snap["catalyser_upper"].T, cmap="Blues", origin="lower",
              vmin=0, vmax=2, alpha=0.25,
              extent=(-0.5, n - 0.5, -0.5, n - 0.5))

    for state, color in CORE_COLORS.items():
        cores = [c for c in snap["cores"] if c["state"] == state]
        if cores:
            ax.scatter([c["x"] for c in cores], [c["y"] for c in cores],
                       c=color, s=14, marker="s", linewidths=0, label=state)

    if snap["energies"]:
        ax.scatter([e["x"] for e in snap["energies"]],
                   [e["y"] for e in snap["energies"]],
                   c="#44FF44", s=30, marker="*", linewidths=0, label="energy")

    living = population.get_living_entities()
    if living:
        ax.scatter([a.x for a in living], [a.y for a in living],
                   c=[agent_color(a) for a in living], s=40,
                   edgecolors="black", linewidths=0.5, label="agents")
        for a in living:
            if a.id == selected_id:
                ax.scatter([a.x], [a.y], s=140, facecolors="none",
                           edgecolors="white", linewidths=1.5)

    ax.set_xlim(-0.5, n - 0.5)
    ax.set_ylim(-0.5, n - 0.5)
    ax.legend(facecolor="#222222", labelcolor="white", loc="upper right",
              fontsize=7)

    path = os.path.join(base, "snapshots", f"step_{step:06d}.png")
    plt.savefig(path, dpi=100, bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# Evolution statistics chart
# ──────────────────────────────────────────────────────────────────────────────

def save_evolution_chart(stats: list, base: str = SAVE_DIR,
                         filename: str = "evolution.png"):
    """
    Plot living count, average/best fitness and cumulative deaths.
    `stats` rows are the Recorder's per-step rows.
    """
    if not stats:
        return
    steps   = [s["step"]                  for s in stats]
    living  = [s["living_count"]          for s in stats]
    avg_fit = [s["average_fitness"]       for s in stats]
    best    = [s["best_all_time_fitness"] for s in stats]
    deaths  = [s["total_deaths"]          for s in stats]

    fig, ax1 = plt.subplots(figsize=(12, 5), dpi=100)
    _dark_axes(ax1, fig)

    ax1.plot(steps, avg_fit, color="#44FF44", linewidth=1.2,
             label="Average fitness", zorder=3)
    ax1.plot(steps, best, color="#CC44FF", linewidth=1.0,
             linestyle="--", label="Best ever", zorder=2)
    ax1.set_ylabel("Fitness", color="white")
    ax1.set_xlabel("Step", color="white")

    ax2 = ax1.twinx()
    ax2.plot(steps, deaths, color="#FF8800", linewidth=1.0,
             alpha=0.8, label="Deaths", zorder=2)
    ax2.plot(steps, living, color="#44AAFF", linewidth=0.8,
             alpha=0.8, label="Living", zorder=1)
    ax2.set_ylabel("Count", color="white")
    ax2.tick_params(colors="white")

    lines1, labels1 = ax1.get_legend_handles_labels()
    lines2, labels2 = ax2.get_legend_handles_labels()
    ax1.legend(lines1 + lines2, labels1 + labels2,
               facecolor="#222222", labelcolor="white",
               loc="upper left", fontsize=8)

    ax1.set_title("Evolutionary Progress", color="white", fontsize=12)
    plt.tight_layout()
    path = os.path.join(base, "charts", filename)
    plt.savefig(path, dpi=100, bbox_inches="tight",
                facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# Policy diagram
# ──────────────────────────────────────────────────────────────────────────────

def save_policy_diagram(agent, step: int, label: str = "",
                        base: str = SAVE_DIR):
    """
    One histogram of weights per layer, plus the output-unit biases.
    """
    layers = agent.policy.layers
    fig, axes = plt.subplots(1, len(layers) + 1,
                             figsize=(3 * (len(layers) + 1), 3), dpi=100)
    fig.patch.set_facecolor("#111111")

    for i, (ax, layer) in enumerate(zip(axes, layers)):
        _dark_axes(ax, fig)
        ax.hist(layer.weights.ravel(), bins=50, color="#4499FF")
        ax.set_title(f"L{i} {layer.inputs}→{layer.neurons}",
                     color="white", fontsize=8)

    ax = axes[-1]
    _dark_axes(ax, fig)
    biases = layers[-1].biases
    ax.bar(range(len(biases)), biases,
           color=["#44FF44" if b >= 0 else "#FF4444" for b in biases])
    ax.set_title("Output biases", color="white", fontsize=8)

    fig.suptitle(f"Step {step} - policy of {label or agent.id}  "
                 f"(fitness {agent.fitness:.1f})", color="white", fontsize=10)
    plt.tight_layout()
    path = os.path.join(base, "policies", f"step_{step:06d}_{label or agent.id}.png")
    plt.savefig(path, dpi=100, bbox_inches="tight",
                facecolor=fig.get_facecolor())
    plt.close(fig)
    return path
