import os

import main as cli
from main import main, parse_args
from recorder import Recorder


def test_parse_args_defaults():
    args = parse_args([])
    assert args.steps == 2000 and args.pop == 5
    assert args.seed is None and not args.no_record


def test_short_run_writes_outputs(tmp_path, capsys):
    out = str(tmp_path)
    sim = main(["--steps", "4", "--grid", "15", "--cores", "5", "--pop", "2",
                "--seed", "3", "--outdir", out, "--snapshot-interval", "2"])

    assert sim.steps == 4
    assert os.path.isfile(os.path.join(out, "stats_log.csv"))
    assert os.path.isfile(os.path.join(out, "charts", "evolution_final.png"))
    snapshots = sorted(os.listdir(os.path.join(out, "snapshots")))
    assert snapshots == ["step_000002.png", "step_000004.png"]
    assert "Simulation complete" in capsys.readouterr().out


def test_no_record_skips_persistence(tmp_path):
    out = str(tmp_path)
    main(["--steps", "1", "--grid", "15", "--cores", "5", "--pop", "2",
          "--outdir", out, "--snapshot-interval", "0", "--no-record"])
    assert not os.path.exists(os.path.join(out, "stats_log.csv"))
    assert os.listdir(os.path.join(out, "snapshots")) == ["step_000001.png"]


def test_snapshots_mark_best_agent_and_chart_uses_full_log(tmp_path, monkeypatch):
    snapshots, charts = [], []

    def fake_snapshot(world, population, step, base, selected_id=None):
        snapshots.append((step, selected_id, population.find_best_living().id))
        return "snapshot.png"

    def fake_chart(stats, base, filename):
        charts.append([row["step"] for row in stats])
        return "chart.png"

    monkeypatch.setattr(cli, "save_world_snapshot", fake_snapshot)
    monkeypatch.setattr(cli, "save_evolution_chart", fake_chart)
    monkeypatch.setattr(cli, "Recorder", lambda outdir: Recorder(outdir, memory=2))

    main(["--steps", "4", "--grid", "15", "--cores", "5", "--pop", "2",
          "--seed", "3", "--outdir", str(tmp_path), "--snapshot-interval", "2"])

    assert [step for step, _, _ in snapshots] == [2, 4, 4]
    assert all(selected == best for _, selected, best in snapshots)
    assert charts == [[1, 2, 3, 4]]
