import os

import pytest

from cinegrade import file_io
from cinegrade.main import main
from conftest import make_gradient


@pytest.fixture
def source(tmp_path):
    path = str(tmp_path / "input.png")
    assert file_io.save_image(make_gradient(120, 160), path)
    return path


def test_presets_lists_catalog(capsys):
    assert main(["presets"]) == 0
    out = capsys.readouterr().out
    assert "sinCity" in out
    assert "bladeRunner2049" in out
    assert len(out.strip().splitlines()) == 17


def test_grade_writes_output(tmp_path, source):
    output = str(tmp_path / "graded.jpg")
    assert main(["grade", source, "-o", output, "--exposure", "0.3", "--crop", "4:5"]) == 0
    assert os.path.exists(output)
    assert file_io.load_source(output).full_res.shape[:2] == (120, 150)


def test_grade_without_preset(tmp_path, source):
    output = str(tmp_path / "plain.png")
    assert main(["grade", source, "-o", output, "--no-preset", "--preset", "dune"]) == 0


def test_grade_locked_preset_needs_unlock(tmp_path, source):
    output = str(tmp_path / "dune.jpg")
    assert main(["grade", source, "-o", output, "--preset", "dune"]) == 1
    assert not os.path.exists(output)
    assert main(["grade", source, "-o", output, "--preset", "dune", "--unlocked"]) == 0


def test_grade_unknown_preset_fails(tmp_path, source):
    assert main(["grade", source, "-o", str(tmp_path / "x.jpg"), "--preset", "casablanca"]) == 1


def test_grade_missing_input_fails(tmp_path):
    assert main(["grade", str(tmp_path / "nope.png"), "-o", str(tmp_path / "x.jpg")]) == 1


def test_batch_command(tmp_path, source, capsys):
    out_dir = str(tmp_path / "batch")
    assert main(["batch", source, "-d", out_dir]) == 0
    assert "Saved 1 photos." in capsys.readouterr().out
    assert os.listdir(out_dir) == ["input_matrix.jpg"]
