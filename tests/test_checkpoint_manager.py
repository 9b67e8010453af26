import json

import pytest

from engine.checkpoint_manager import CheckpointCorrupt, CheckpointNotFound


def test_save_then_load(checkpoints):
    checkpoints.save(3, ["Merhaba.", "", "NOT TRANSLATED: Hi."])
    assert checkpoints.load(3) == ["Merhaba.", "", "NOT TRANSLATED: Hi."]


def test_save_leaves_no_temp_file(checkpoints):
    checkpoints.save(1, ["a"])
    assert [p.name for p in checkpoints.state_dir.iterdir()] == ["chapter_1.json"]


def test_missing(checkpoints):
    with pytest.raises(CheckpointNotFound):
        checkpoints.load(9)


@pytest.mark.parametrize("content", ["{not json", '{"lines": []}', "[1, 2]"])
def test_corrupt(checkpoints, content):
    path = checkpoints.checkpoint_path(2)
    path.parent.mkdir(parents=True)
    path.write_text(content, encoding="utf-8")

    with pytest.raises(CheckpointCorrupt):
        checkpoints.load(2)


def test_non_ascii_kept_readable(checkpoints):
    checkpoints.save(1, ["Büyücü"])
    raw = checkpoints.checkpoint_path(1).read_text(encoding="utf-8")
    assert "Büyücü" in raw
    assert json.loads(raw) == ["Büyücü"]


def test_delete(checkpoints):
    checkpoints.save(4, ["x"])
    assert checkpoints.delete(4) is True
    assert checkpoints.delete(4) is False
    assert not checkpoints.checkpoint_path(4).exists()


def test_finalize(checkpoints):
    assert not checkpoints.is_finalized(5)

    path = checkpoints.finalize(5, ["Bir.", "", "İki."])

    assert checkpoints.is_finalized(5)
    assert path.read_text(encoding="utf-8") == "Bir.\n\nİki."


def test_finalize_empty_chapter(checkpoints):
    checkpoints.finalize(6, [])
    assert checkpoints.output_path(6).read_text(encoding="utf-8") == ""
