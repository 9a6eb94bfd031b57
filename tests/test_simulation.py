import numpy as np
import pytest

from peakfit_smt.__main__ import main
from peakfit_smt.results import read_results
from peakfit_smt.simulation import render_spots, simulate_stack


def test_render_spots():
    pixels = render_spots((20, 10), [(5.0, 3.0)], 100.0, 1.0)

    assert pixels.shape == (10, 20)
    assert pixels[3, 5] == 100.0
    assert pixels[3, 6] == pytest.approx(100.0 * np.exp(-0.5))


def test_simulate_stack(params, rng):
    params.sim_frames = 3
    params.num_spots = 4
    params.frame_size = (40, 30)

    image, truth = simulate_stack(params, rng)

    assert image.num_frames == 3
    assert image.pixel_data.shape == (3, 30, 40)
    assert image.pixel_data.dtype == np.uint16
    assert len(truth) == 3
    for positions in truth:
        assert positions.shape == (4, 2)
        assert positions[:, 0].min() >= 5 and positions[:, 0].max() <= 35
        assert positions[:, 1].min() >= 5 and positions[:, 1].max() <= 25


def test_simulate_rejects_bad_sizes(params):
    params.frame_size = (8, 8)
    with pytest.raises(SystemExit):
        simulate_stack(params)

    params.frame_size = (64, 64)
    params.sim_frames = 0
    with pytest.raises(SystemExit):
        simulate_stack(params)


def test_simulate_fit_cluster_from_command_line(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    main(["peakfit-smt", "simulate", "fit", "cluster", "name=run", "seed=7",
          "sim_frames=3", "num_spots=1", "frame_size=48,48", "num_procs=2",
          "use_discoidal=false", "minimum_distance=4", "cluster_min_size=1", "cluster_distance=2.0"])

    simulated = read_results(tmp_path / "run_simulated.csv")
    fits = read_results(tmp_path / "run_fits.csv")
    clusters = read_results(tmp_path / "run_clusters.csv")

    assert (tmp_path / "run.tif").exists()
    assert len(simulated) == 3
    assert len(fits) > 0
    assert len(clusters) == len(fits)
    assert "cluster" in clusters.columns
    assert np.all(clusters.column("cluster") >= 0)

    # Every accepted fit lies near a simulated spot of its frame
    for row in fits.rows:
        same_frame = simulated.column("slice") == row["slice"]
        distances = np.hypot(simulated.column("x")[same_frame] - row["x"],
                             simulated.column("y")[same_frame] - row["y"])
        assert distances.min() < 1.0


def test_command_line_needs_task_and_name(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    with pytest.raises(SystemExit):
        main(["peakfit-smt", "name=run"])
    with pytest.raises(SystemExit):
        main(["peakfit-smt", "fit"])
    with pytest.raises(SystemExit):
        main(["peakfit-smt", "cluster", "name=missing"])
