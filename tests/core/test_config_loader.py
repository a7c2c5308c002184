"""Tests for locator healing configuration loading."""

import pytest
import yaml

from locator_healer.core.config_loader import ConfigurationError, SelfHealingConfigLoader
from locator_healer.core.models import HealingConfiguration


class TestLoadConfig:
    """YAML loading, defaults and validation."""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = SelfHealingConfigLoader(str(tmp_path / "missing.yaml")).load_config()

        assert config.enabled is True
        assert config.max_retries == 4
        assert config.prefix_match_labels == ["save"]
        assert config.evidence_tags == ["input", "textarea", "button", "label", "a", "span"]

    def test_partial_file_is_merged_with_defaults(self, tmp_path):
        path = tmp_path / "self_healing.yaml"
        path.write_text(yaml.dump({"self_healing": {
            "max_retries": 2,
            "evidence": {"next_elements_count": 5},
            "labels": {"protected": ["Home"]},
        }}), encoding="utf-8")

        config = SelfHealingConfigLoader(str(path)).load_config()

        assert config.max_retries == 2
        assert config.next_elements_count == 5
        assert config.prefix_match_labels == ["save"]
        assert config.protected_labels == ["Home"]
        assert config.page_object_suffix == ".page.ts"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "self_healing.yaml"
        path.write_text("self_healing: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            SelfHealingConfigLoader(str(path)).load_config()

    @pytest.mark.parametrize("section", [
        {"max_retries": 0},
        {"oracle_timeout": 0},
        {"evidence": {"tags": []}},
        {"source_layout": {"default_locator_extension": "ts"}},
    ])
    def test_validation_errors(self, tmp_path, section):
        path = tmp_path / "self_healing.yaml"
        path.write_text(yaml.dump({"self_healing": section}), encoding="utf-8")

        with pytest.raises(ConfigurationError, match="validation failed"):
            SelfHealingConfigLoader(str(path)).load_config()

    def test_cached_until_file_changes(self, tmp_path):
        loader = SelfHealingConfigLoader(str(tmp_path / "missing.yaml"))

        assert loader.load_config() is loader.load_config()
        assert loader.load_config(force_reload=True) is not None


class TestSaveConfig:
    def test_save_then_load(self, tmp_path):
        path = tmp_path / "config" / "self_healing.yaml"
        loader = SelfHealingConfigLoader(str(path))

        loader.save_config(HealingConfiguration(max_retries=6, protected_labels=["Home"]))
        config = SelfHealingConfigLoader(str(path)).load_config()

        assert config.max_retries == 6
        assert config.protected_labels == ["Home"]

    def test_invalid_config_is_not_saved(self, tmp_path):
        path = tmp_path / "self_healing.yaml"

        with pytest.raises(ConfigurationError):
            SelfHealingConfigLoader(str(path)).save_config(HealingConfiguration(max_retries=50))

        assert not path.exists()
