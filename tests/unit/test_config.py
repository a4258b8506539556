"""Unit tests for configuration loading."""

import tempfile
from pathlib import Path

import pytest

from warden.core.config import CONFIG_FILENAME, EngineConfig, load_config
from warden.core.exceptions import ConfigurationError
from warden.core.models import Severity
from warden.rules.generic_exception import RULE_ID as GENERIC
from warden.rules.resource_disposal import RULE_ID as DISPOSAL
from warden.rules.shared_map import RULE_ID as SHARED_MAP


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestDefaults:
    """Tests for the built-in configuration."""

    def test_every_rule_enabled(self) -> None:
        """Test that all rules are on with their default severities."""
        config = EngineConfig()

        assert config.enabled_rules() == [GENERIC, DISPOSAL, SHARED_MAP]
        assert config.rules[SHARED_MAP].severity == Severity.ERROR
        assert config.rules[GENERIC].severity == Severity.WARNING
        assert config.fail_on == Severity.WARNING
        assert config.jobs == 1

    def test_rule_patterns(self) -> None:
        """Test a few default pattern lists."""
        config = EngineConfig()

        assert "%Stream" in config.rules[DISPOSAL].pattern("resource_types")
        assert "Task.Run" in config.rules[SHARED_MAP].pattern("launch_calls")
        with pytest.raises(ConfigurationError):
            config.rules[GENERIC].pattern("nonexistent")


class TestFromDict:
    """Tests for validating configuration mappings."""

    def test_rule_overrides(self) -> None:
        """Test severity and enabled overrides."""
        config = EngineConfig.from_dict(
            {
                "rules": {
                    GENERIC: {"severity": "ERROR"},
                    DISPOSAL: {"enabled": False},
                },
                "fail_on": "error",
                "jobs": 4,
            }
        )

        assert config.rules[GENERIC].severity == Severity.ERROR
        assert config.enabled_rules() == [GENERIC, SHARED_MAP]
        assert config.fail_on == Severity.ERROR
        assert config.jobs == 4

    def test_pattern_list_replaces_primary(self) -> None:
        """Test that a plain list replaces the rule's primary pattern list."""
        config = EngineConfig.from_dict({"rules": {GENERIC: {"patterns": ["Audit%"]}}})
        settings = config.rules[GENERIC]

        assert settings.pattern("logging_methods") == frozenset({"Audit%"})
        assert "Exception" in settings.pattern("root_exception_types")

    def test_pattern_mapping(self) -> None:
        """Test overriding a named pattern list."""
        config = EngineConfig.from_dict(
            {"rules": {SHARED_MAP: {"patterns": {"map_types": ["Cache"]}}}}
        )

        assert config.rules[SHARED_MAP].pattern("map_types") == frozenset({"Cache"})
        assert "%shared%" in config.rules[SHARED_MAP].pattern("shared_fields")

    def test_top_level_lists(self) -> None:
        """Test suppression phrases, lock patterns and excludes."""
        config = EngineConfig.from_dict(
            {
                "suppression_phrases": ["nolint", "noqa"],
                "lock_patterns": ["%guard%"],
                "exclude": ["generated/*"],
            }
        )

        assert config.suppression_phrases == ("nolint", "noqa")
        assert config.lock_patterns == frozenset({"%guard%"})
        assert config.exclude == ["generated/*"]

    @pytest.mark.parametrize(
        "data, message",
        [
            ({"colour": "red"}, "colour"),
            ({"rules": {"no-such-rule": {}}}, "no-such-rule"),
            ({"rules": {GENERIC: {"severity": "fatal"}}}, "fatal"),
            ({"rules": {GENERIC: {"level": "error"}}}, "level"),
            ({"rules": {GENERIC: {"enabled": "yes"}}}, "enabled"),
            ({"rules": {GENERIC: {"patterns": "%log%"}}}, "patterns"),
            ({"rules": {GENERIC: {"patterns": []}}}, "empty"),
            ({"rules": {GENERIC: {"patterns": {"verbs": ["x"]}}}}, "verbs"),
            ({"rules": ["x"]}, "rules"),
            ({"jobs": 0}, "jobs"),
            ({"jobs": True}, "jobs"),
            ({"exclude": "build"}, "exclude"),
            ({"fail_on": "sometimes"}, "sometimes"),
        ],
    )
    def test_invalid(self, data: dict, message: str) -> None:
        """Test that invalid settings raise ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig.from_dict(data)

        assert message in str(exc_info.value)

    def test_not_a_mapping(self) -> None:
        """Test that a non-mapping document is rejected."""
        with pytest.raises(ConfigurationError):
            EngineConfig.from_dict(["rules"])


class TestLoading:
    """Tests for reading configuration files."""

    def test_from_yaml(self, temp_dir: Path) -> None:
        """Test loading a YAML file."""
        path = temp_dir / "warden.yml"
        path.write_text(
            "rules:\n"
            f"  {DISPOSAL}:\n"
            "    severity: informational\n"
            "    patterns:\n"
            "      release_methods: [Release]\n"
        )

        config = EngineConfig.from_yaml(path)

        assert config.rules[DISPOSAL].severity == Severity.INFORMATIONAL
        assert config.rules[DISPOSAL].pattern("release_methods") == frozenset({"Release"})

    def test_empty_file(self, temp_dir: Path) -> None:
        """Test that an empty file yields the defaults."""
        path = temp_dir / "warden.yml"
        path.write_text("")

        assert EngineConfig.from_yaml(path).enabled_rules() == EngineConfig().enabled_rules()

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        """Test that malformed YAML raises ConfigurationError."""
        path = temp_dir / "warden.yml"
        path.write_text("rules: [unclosed\n")

        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig.from_yaml(path)

        assert "Invalid YAML" in str(exc_info.value)

    def test_project_default_discovered(self, temp_dir: Path) -> None:
        """Test that .warden.yml in the project root is picked up."""
        (temp_dir / CONFIG_FILENAME).write_text("fail_on: error\n")

        assert load_config(project_root=temp_dir).fail_on == Severity.ERROR

    def test_no_project_default(self, temp_dir: Path) -> None:
        """Test that a project without a config file uses the defaults."""
        assert load_config(project_root=temp_dir).fail_on == Severity.WARNING

    def test_explicit_missing_path(self, temp_dir: Path) -> None:
        """Test that an explicit config path must exist."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(temp_dir / "missing.yml", temp_dir)

        assert "Cannot read config" in str(exc_info.value)
