from __future__ import annotations

from pathlib import Path

import pytest

from mediaprogress.core.errors import ConfigError
from mediaprogress.core.progress.settings import ProgressConfig, load_config, read_config, save_config


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "nope.yaml")

    assert cfg.slots == ("anime", "manga", "adulte-game", "cloud", "translation")
    assert cfg.dismiss_delay_ms("manga-enrichment") == 2000
    assert cfg.dismiss_delay_ms("anything-else") == 3000
    assert cfg.close_all_when_completed_ms is None


def test_from_dict_coerces_and_ignores_unknown_keys() -> None:
    cfg = ProgressConfig.from_dict(
        {
            "dismiss_delays_ms": {"default": "1500", "cloud-sync": "bad", "translation": -4},
            "elapsed_ceiling_ms": "3600000",
            "close_all_when_completed_ms": "2000",
            "theme": "dark",
        }
    )

    assert cfg.dismiss_delay_ms("cloud-sync") == 1500
    assert cfg.dismiss_delay_ms("translation") == 1500
    assert cfg.dismiss_delay_ms("anilist-sync") == 5000
    assert cfg.elapsed_ceiling_ms == 3_600_000
    assert cfg.close_all_when_completed_ms == 2000


def test_save_then_read(tmp_path: Path) -> None:
    path = tmp_path / "cfg" / "progress_config.yaml"
    cfg = ProgressConfig(slots=("anime", "music"), close_all_when_completed_ms=500)

    save_config(cfg, path)
    loaded = read_config(path)

    assert loaded.slots == ("anime", "music")
    assert loaded.close_all_when_completed_ms == 500


def test_invalid_yaml_is_strict_on_read_and_lenient_on_load(tmp_path: Path) -> None:
    path = tmp_path / "progress_config.yaml"
    path.write_text("slots: [anime\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        read_config(path)
    assert load_config(path) == ProgressConfig()


def test_non_mapping_document_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "progress_config.yaml"
    path.write_text("- anime\n- manga\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        read_config(path)
