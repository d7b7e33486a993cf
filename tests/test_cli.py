"""Tests for the command line runner."""

import json

import numpy as np
from PIL import Image

from slic_seg.cli import BANNER, main

from tests.conftest import random_rgb_image


class TestUsage:
    def test_no_arguments_prints_usage(self, capsys):
        assert main([]) == 0
        out = capsys.readouterr().out
        assert BANNER in out
        assert "Usage:" in out

    def test_nx_without_ny_prints_usage(self, capsys, tmp_path):
        assert main(["in.png", str(tmp_path / "out.png"), "3"]) == 0
        assert "Usage:" in capsys.readouterr().out
        assert not (tmp_path / "out.png").exists()


class TestSingleImage:
    def test_missing_image(self, tmp_path):
        out = tmp_path / "out.png"
        assert main([str(tmp_path / "missing.png"), str(out)]) == -1
        assert not out.exists()

    def test_unreadable_image(self, tmp_path):
        bad = tmp_path / "bad.png"
        bad.write_text("not an image")
        assert main([str(bad), str(tmp_path / "out.png")]) == -1

    def test_directory_as_input(self, tmp_path):
        folder = tmp_path / "adir"
        folder.mkdir()
        out = tmp_path / "out.png"
        assert main([str(folder), str(out)]) == -1
        assert not out.exists()

    def test_unknown_output_extension(self, rgb_file, tmp_path):
        out = tmp_path / "out.xyz"
        assert main([str(rgb_file), str(out)]) == 1
        assert not out.exists()

    def test_unwritable_output_folder(self, rgb_file, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a folder")
        assert main([str(rgb_file), str(blocker / "out.png")]) == 1

    def test_writes_overlay(self, rgb_file, tmp_path):
        out = tmp_path / "out.png"
        assert main([str(rgb_file), str(out), "3", "3", "10"]) == 0

        result = np.asarray(Image.open(out))
        assert result.shape == (30, 40, 3)
        assert (result == 0).all(axis=2).any()

    def test_default_output_path(self, rgb_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert main([str(rgb_file)]) == 0
        assert (tmp_path / "out.png").exists()

    def test_options_and_label_map(self, rgb_file, tmp_path):
        out = tmp_path / "out.png"
        labels_path = tmp_path / "labels.npy"
        args = [str(rgb_file), str(out), "4", "3", "--reestimate", "--workers", "2",
                "--iterations", "5", "--save-labels", str(labels_path)]
        assert main(args) == 0
        labels = np.load(labels_path)
        assert labels.shape == (30, 40)

    def test_invalid_grid(self, rgb_file, tmp_path):
        out = tmp_path / "out.png"
        assert main([str(rgb_file), str(out), "0", "3"]) == 1
        assert not out.exists()


class TestBatch:
    def test_summary(self, tmp_path, capsys):
        images_dir = tmp_path / "images"
        images_dir.mkdir()
        for i in range(2):
            Image.fromarray(random_rgb_image(20, 24, seed=i)).save(images_dir / f"img{i}.png")
        (images_dir / "broken.png").write_text("garbage")
        output_dir = tmp_path / "results"

        assert main(["--images-dir", str(images_dir), "--output-dir", str(output_dir), "--save-labels", str(tmp_path / "labels")]) == 0

        summary = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert summary["total"] == 3
        assert summary["processed"] == 2
        assert summary["skipped"] == 1
        assert summary["method"] == "slic"
        assert (output_dir / "slic" / "img0_slic.png").exists()
        assert (tmp_path / "labels" / "img1_labels.npy").exists()
