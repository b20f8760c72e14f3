import pandas as pd
import pytest

from src.exps_flammability import visualization
from src.exps_flammability.remef import remove_effects


def _grid():
    rows = []
    for x in [0, 1]:
        for y in [0, 1]:
            rows.append({"x": x, "y": y, "prediction": float(x + y)})
    return pd.DataFrame(rows)


def test_surface_plot_generation():
    fig = visualization.surface_plot(_grid().rename(columns={"x": "a", "y": "b"}), feature_x="a", feature_y="b")
    assert fig.data


def test_surface_html_export(tmp_path):
    grid = _grid().rename(columns={"x": "mpa_scaled", "y": "sample_wt_scaled"})
    html_path = tmp_path / "plot.html"
    visualization.surface_plot(grid, feature_x="mpa_scaled", feature_y="sample_wt_scaled", output_html=html_path)
    assert html_path.exists()


def test_surface_png_export_mocked(tmp_path, monkeypatch):
    grid = _grid().rename(columns={"x": "feat1", "y": "feat2"})
    png_path = tmp_path / "plot.png"

    captured = {}

    def fake_write_image(self, path):
        captured["path"] = path

    monkeypatch.setattr("plotly.graph_objects.Figure.write_image", fake_write_image)
    visualization.surface_plot(grid, feature_x="feat1", feature_y="feat2", output_png=png_path)
    assert captured["path"].endswith("plot.png")


def test_surface_missing_columns():
    with pytest.raises(ValueError):
        visualization.surface_plot(_grid(), feature_x="x", feature_y="z")


def test_exploratory_scatter_saves(tmp_path, prepared):
    path = tmp_path / "explore.png"
    fig = visualization.exploratory_scatter(prepared, outcome="tti", predictor="mpa_scaled", output_png=path)
    assert path.exists()
    assert fig.axes[0].get_xlabel() == "mpa_scaled"


def test_aic_comparison_plot(tmp_path):
    comparison = pd.DataFrame(
        {"label": ["full", "-x", "-y"], "aic": [100.0, 101.0, None], "delta_aic": [0.0, 1.0, None], "selected": [True, False, False]}
    )
    path = tmp_path / "aic.png"
    visualization.aic_comparison_plot(comparison, output_png=path)
    assert path.exists()


def test_partial_effect_and_residual_plots(tmp_path, fitted):
    partial = remove_effects(fitted, fixed=["sample_wt_scaled", "start_temp_scaled"], random=True)
    visualization.partial_effect_plot(fitted, partial, "mpa_scaled", output_png=tmp_path / "partial.png")
    visualization.residual_plot(fitted, output_png=tmp_path / "resid.png")
    assert (tmp_path / "partial.png").exists()
    assert (tmp_path / "resid.png").exists()
