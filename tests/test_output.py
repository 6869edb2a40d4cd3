import os

import pandas as pd

from dosescope.analysis import analyze, process_all_files
from dosescope.data_processing import grid_from_dataframe, load_grid
from dosescope.output import factor_table, save_results_to_csv
from dosescope.plotting import plot_dilution_ladder
from dosescope.schema import DilutionPattern, ResultColumns
from main import main

PLATE_CSV = """Compound,Concentration (nM),Response 1,Response 2
A,729,98,96
A,243,92,90
A,81,75,78
A,27,45,48
A,9,18,20
A,3,6,5
"""


def _write_plate(tmp_path, name="plate.csv"):
    path = tmp_path / name
    path.write_text(PLATE_CSV)
    return str(path)


class TestLoading:
    def test_csv_is_loaded_as_displayed(self, tmp_path):
        grid = load_grid(_write_plate(tmp_path))
        assert len(grid) == 7
        assert grid[0] == ["Compound", "Concentration (nM)", "Response 1", "Response 2"]
        assert grid[1] == ["A", 729.0, 98.0, 96.0]

    def test_blank_cells_become_none(self, tmp_path):
        path = tmp_path / "gaps.csv"
        path.write_text("Dose,Signal\n10,\n,5\n")
        grid = load_grid(str(path))
        assert grid[1] == [10.0, None]
        assert grid[2] == [None, 5.0]

    def test_mixed_column_keeps_text(self):
        df = pd.DataFrame([["x", "1.5"], ["y", "10 uM"]])
        assert grid_from_dataframe(df) == [["x", 1.5], ["y", "10 uM"]]

    def test_empty_frame(self):
        assert grid_from_dataframe(pd.DataFrame()) == []

    def test_unreadable_files_are_skipped(self, tmp_path, caplog):
        plate = _write_plate(tmp_path)
        results = process_all_files([plate, str(tmp_path / "missing.csv")])
        assert [path for path, _ in results] == [plate]
        assert "Skipping file" in caplog.text


def test_save_results_to_csv(tmp_path):
    result = analyze(load_grid(_write_plate(tmp_path)))
    out_dir = tmp_path / "out"
    summary_path, recs_path = save_results_to_csv([("plate.csv", result)], str(out_dir))

    summary = pd.read_csv(summary_path)
    assert list(summary.columns) == list(ResultColumns().ordered())
    assert summary.loc[0, "Dilution Pattern"] == "serial"
    assert summary.loc[0, "Concentration Column"] == 1

    recs = pd.read_csv(recs_path)
    assert len(recs) == len(result.recommendations)
    assert list(recs["Priority"]) == sorted(recs["Priority"], reverse=True)


def test_factor_table(tmp_path):
    result = analyze(load_grid(_write_plate(tmp_path)))
    table = factor_table(result)
    assert list(table["Dimension"].unique()) == ["concentration", "response", "dose-response"]
    assert len(table) == 13
    assert table["Score"].between(0, 1).all()


def test_factor_table_of_failed_validation_is_empty():
    table = factor_table(analyze([]))
    assert table.empty
    assert list(table.columns) == ["Dimension", "Factor", "Weight", "Score", "Impact", "Description"]


def test_plot_dilution_ladder(tmp_path):
    result = analyze(load_grid(_write_plate(tmp_path)))
    savepath = str(tmp_path / "figures" / "ladder.png")
    assert plot_dilution_ladder(result.pattern, savepath) == savepath
    assert os.path.getsize(savepath) > 0


def test_plot_empty_pattern(tmp_path):
    savepath = str(tmp_path / "empty.png")
    plot_dilution_ladder(DilutionPattern.empty(), savepath, title="No data")
    assert os.path.exists(savepath)


class TestCommandLine:
    def test_run_writes_outputs(self, tmp_path):
        plate = _write_plate(tmp_path)
        out_dir = tmp_path / "out"
        code = main([plate, "--output-dir", str(out_dir), "--log-file", str(tmp_path / "run.log"), "--plot"])
        assert code == 0
        assert (out_dir / "detection_summary.csv").exists()
        assert (out_dir / "recommendations.csv").exists()
        assert (out_dir / "plate_ladder.png").exists()

    def test_no_loadable_input_fails(self, tmp_path):
        code = main([str(tmp_path / "missing.csv"), "--output-dir", str(tmp_path / "out"),
                     "--log-file", str(tmp_path / "run.log")])
        assert code == 1
