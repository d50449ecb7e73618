import pytest
from pathlib import Path
from pydantic import ValidationError

from framechain.config import load_yaml, merge_dicts, resolve_config
from framechain.models import FrameChainConfig


def test_default_config_loads(monkeypatch):
    """Test default.yaml loads without errors."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config = resolve_config()
    assert isinstance(config, FrameChainConfig)
    assert config.database.url == "sqlite:///./framechain.db"
    assert config.generation.default_mode == "image-to-video"
    assert config.enhancement.default_model == "replicate-esrgan"
    assert config.api.default_user_id == "local-user"


def test_environment_database_url(monkeypatch):
    """DATABASE_URL beats the YAML files."""
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./from-env.db")
    config = resolve_config()
    assert config.database.url == "sqlite:///./from-env.db"


def test_cli_beats_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./from-env.db")
    config = resolve_config({"database_url": "sqlite:///./from-cli.db"})
    assert config.database.url == "sqlite:///./from-cli.db"


def test_cli_override_log_level():
    config = resolve_config({"log_level": "DEBUG"})
    assert config.logging.level == "DEBUG"


def test_none_overrides_are_ignored():
    """argparse passes None for unset flags."""
    config = resolve_config({"log_level": None, "storage_root": None})
    assert config.logging.level == "INFO"
    assert config.storage.root_dir == "media"


def test_multiple_cli_overrides():
    config = resolve_config(
        {
            "generation_base_url": "http://gen.test",
            "enhancement_base_url": "http://upscale.test",
            "storage_root": "/tmp/blobs",
        }
    )
    assert config.generation.base_url == "http://gen.test"
    assert config.enhancement.base_url == "http://upscale.test"
    assert config.storage.root_dir == "/tmp/blobs"


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        FrameChainConfig.from_dict({"enhancement": {"default_scale_factor": 0}})
    with pytest.raises(ValidationError):
        FrameChainConfig.from_dict({"frames": {"extractor": "ffmpeg"}})


def test_missing_yaml_returns_empty_dict():
    """Test graceful handling of missing config files."""
    assert load_yaml(Path("nonexistent.yaml")) == {}


def test_merge_dicts_is_recursive():
    base = {"enhancement": {"timeout_s": 900, "default_model": "replicate-esrgan"}}
    override = {"enhancement": {"timeout_s": 60}}

    merged = merge_dicts(base, override)

    assert merged == {"enhancement": {"timeout_s": 60, "default_model": "replicate-esrgan"}}
    assert base["enhancement"]["timeout_s"] == 900
