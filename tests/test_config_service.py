import json

from annotator.services.config_service import DEFAULT_CONFIG, ConfigService


def test_defaults_written_when_missing(tmp_path):
    path = tmp_path / "filla" / "config.json"
    config = ConfigService(path)

    assert path.exists()
    assert config.path == path
    assert config.autosave_delay_ms == 2000
    assert config.saved_status_ms == 1000
    assert config.hit_tolerance_px == 8
    assert config.touch_hit_tolerance_px == 20
    assert config.default_color == "charcoal"
    assert config.default_stroke_width == "medium"
    assert json.loads(path.read_text()) == DEFAULT_CONFIG


def test_user_values_merged_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"autosave_delay_ms": 500, "store_dir": str(tmp_path / "store")}))

    config = ConfigService(path)

    assert config.autosave_delay_ms == 500
    assert config.store_dir == tmp_path / "store"
    assert config.image_timeout_s == 10
    # New default keys are written back
    assert "touch_hit_tolerance_px" in json.loads(path.read_text())


def test_corrupt_file_is_recreated(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2")

    config = ConfigService(path)

    assert config.autosave_delay_ms == 2000
    assert json.loads(path.read_text()) == DEFAULT_CONFIG


def test_non_object_file_is_recreated(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2]")

    assert ConfigService(path).hit_tolerance_px == 8


def test_set_and_save(tmp_path):
    path = tmp_path / "config.json"
    config = ConfigService(path)

    config.set("default_color", "calm-blue")
    assert ConfigService(path).default_color == "charcoal"

    config.save()
    assert ConfigService(path).default_color == "calm-blue"
