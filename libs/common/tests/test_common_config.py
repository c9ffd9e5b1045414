#!/usr/bin/env python3
"""
Tests for the configuration utilities in gador_common.config and CLI integration.
"""

import argparse
import os
import tempfile
from typing import Literal

import pytest
import toml
from pydantic import BaseModel, Field

from gador_common.config import (
    load_config_with_overrides,
    deep_merge,
    namespace_to_dict,
    BaseConfig,
    ConfigError
)
from gador_common.cli import (
    extract_cli_args_from_config,
    create_service_parser,
    TrackedAction,
    TrackedStoreTrueAction,
    TrackedStoreFalseAction
)


def test_deep_merge():
    """Test that deep_merge correctly merges nested dictionaries."""
    base = {
        "a": 1,
        "b": {
            "c": 2,
            "d": 3
        },
        "e": [1, 2, 3]
    }

    override = {
        "a": 10,
        "b": {
            "c": 20,
            "f": 30
        },
        "g": "new"
    }

    expected = {
        "a": 10,
        "b": {
            "c": 20,
            "d": 3,
            "f": 30
        },
        "e": [1, 2, 3],
        "g": "new"
    }

    result = deep_merge(base, override)
    assert result == expected

    # Original dictionaries should not be modified
    assert base["a"] == 1
    assert base["b"]["c"] == 2
    assert "g" not in base
    assert "d" not in override["b"]


def test_deep_merge_replaces_lists():
    """Lists (like the scene catalog) are replaced, never concatenated."""
    result = deep_merge({"scenes": [1, 2, 3]}, {"scenes": [4]})
    assert result == {"scenes": [4]}


def test_namespace_to_dict():
    """Test conversion of argparse.Namespace to nested dictionary."""
    namespace = argparse.Namespace(
        host="127.0.0.1",
        port=5050,
        none_value=None,
        not_explicit="default"
    )
    setattr(namespace, "initial_state.volume", 0.5)
    setattr(namespace, "validation.scene_policy", "allow")

    namespace._explicitly_set = {'host', 'port', 'initial_state.volume', 'validation.scene_policy'}

    expected = {
        "host": "127.0.0.1",
        "port": 5050,
        "initial_state": {"volume": 0.5},
        "validation": {"scene_policy": "allow"},
    }

    assert namespace_to_dict(namespace) == expected


def test_load_config_with_overrides():
    """Test loading configuration with various override combinations."""
    default_config = {
        "host": "0.0.0.0",
        "port": 5000,
        "initial_state": {"scene": 1, "volume": 0.8},
    }

    with tempfile.NamedTemporaryFile(suffix='.toml', mode='w+', delete=False) as temp_file:
        toml.dump({"port": 6000, "initial_state": {"volume": 0.3}}, temp_file)
        temp_file_path = temp_file.name

    try:
        args = argparse.Namespace()
        setattr(args, "initial_state.scene", 3)
        args._explicitly_set = {'initial_state.scene'}

        result = load_config_with_overrides(
            override_config={"host": "127.0.0.1"},
            config_file=temp_file_path,
            default_config=default_config,
            args=args
        )

        assert result["host"] == "127.0.0.1"              # From override_config
        assert result["port"] == 6000                     # From file
        assert result["initial_state"]["volume"] == 0.3   # From file
        assert result["initial_state"]["scene"] == 3      # From args

        # Non-existent file falls back to defaults
        result = load_config_with_overrides(
            config_file="non_existent_file.toml",
            default_config=default_config
        )
        assert result == default_config

    finally:
        os.unlink(temp_file_path)


def test_load_config_with_invalid_toml():
    """A config file that is not valid TOML is a ConfigError."""
    with tempfile.NamedTemporaryFile(suffix='.toml', mode='w+', delete=False) as temp_file:
        temp_file.write("port = = 5\n[broken\n")
        temp_file_path = temp_file.name

    try:
        with pytest.raises(ConfigError):
            load_config_with_overrides(config_file=temp_file_path)
    finally:
        os.unlink(temp_file_path)


class MockStateConfig(BaseModel):
    scene: int = 1
    volume: float = 0.8


class MockRelayConfig(BaseConfig):
    service_name: str = "gadortest_relay"
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    initial_state: MockStateConfig = Field(default_factory=MockStateConfig)


def test_pydantic_config_from_overrides():
    """Priority: args > override_config > file > defaults."""
    with tempfile.NamedTemporaryFile(suffix='.toml', mode='w+', delete=False) as temp_file:
        toml.dump({"host": "file-host", "port": 6000, "initial_state": {"scene": 2}}, temp_file)
        temp_file_path = temp_file.name

    try:
        config1 = MockRelayConfig.from_overrides(config_file=temp_file_path)
        assert config1.host == "file-host"
        assert config1.initial_state.scene == 2
        assert config1.initial_state.volume == 0.8

        args = argparse.Namespace()
        setattr(args, "port", 7000)
        setattr(args, "initial_state.volume", 0.1)
        args._explicitly_set = {'port', 'initial_state.volume'}

        config2 = MockRelayConfig.from_overrides(
            override_config={"port": 6500, "debug": True},
            config_file=temp_file_path,
            args=args
        )
        assert config2.port == 7000                  # args beat override_config
        assert config2.debug is True                 # From override
        assert config2.initial_state.scene == 2      # From file
        assert config2.initial_state.volume == 0.1   # From args

    finally:
        os.unlink(temp_file_path)


def test_env_overrides(monkeypatch):
    """GADORTEST_* variables override the file but not explicit overrides."""
    monkeypatch.setenv("GADORTEST_PORT", "5151")
    monkeypatch.setenv("GADORTEST_INITIAL_STATE_VOLUME", "0.25")
    monkeypatch.setenv("GADORTEST_UNRELATED_SECRET", "ignored")

    config = MockRelayConfig.from_overrides()
    assert config.port == 5151
    assert config.initial_state.volume == 0.25

    config = MockRelayConfig.from_overrides(override_config={"port": 9000})
    assert config.port == 9000


def test_from_overrides_invalid_config():
    """Unknown keys and bad types surface as ConfigError."""
    with pytest.raises(ConfigError):
        MockRelayConfig.from_overrides(override_config={"no_such_field": 1})

    with pytest.raises(ConfigError):
        MockRelayConfig.from_overrides(override_config={"port": "not a port"})


# ============================================================================
# CLI INTEGRATION TESTS
# ============================================================================

def test_extract_cli_args_from_config_basic():
    """Test CLI argument extraction from simple Pydantic models."""

    class SimpleConfig(BaseModel):
        name: str = Field(default="test", description="Service name")
        port: int = Field(default=5000, description="Port number")
        debug: bool = Field(default=False, description="Enable debug mode")
        interval: float = Field(default=30.0, description="Interval in seconds")

    cli_args = extract_cli_args_from_config(SimpleConfig)

    assert len(cli_args) == 4
    assert cli_args["--name"]["type"] == str
    assert "Service name" in cli_args["--name"]["help"]
    assert cli_args["--port"]["type"] == int
    assert cli_args["--port"]["action"] == TrackedAction
    assert cli_args["--debug"]["action"] == TrackedStoreTrueAction
    assert cli_args["--interval"]["type"] == float


def test_extract_cli_args_literal_and_nested():
    """Literal fields become choices; nested models use dotted dests."""

    class PolicyConfig(BaseModel):
        volume_policy: Literal["clamp", "reject", "allow"] = Field(default="clamp", description="Policy")
        enabled: bool = Field(default=True, description="Enabled")

    class ServiceConfig(BaseModel):
        validation: PolicyConfig = Field(default_factory=PolicyConfig)
        scenes: list = Field(default_factory=list)

    cli_args = extract_cli_args_from_config(ServiceConfig)

    assert "--validation-volume-policy" in cli_args
    assert cli_args["--validation-volume-policy"]["choices"] == ["clamp", "reject", "allow"]
    assert cli_args["--validation-volume-policy"]["dest"] == "validation.volume_policy"
    assert "[Validation] Policy" in cli_args["--validation-volume-policy"]["help"]

    assert cli_args["--no-validation-enabled"]["action"] == TrackedStoreFalseAction

    # lists are left to the config file
    assert not any("scenes" in name for name in cli_args)


def test_create_service_parser_tracks_explicit_args():
    """Only explicitly given flags reach the config layer."""
    parser = create_service_parser(
        service_name="Test",
        description="Test service",
        default_config_path="config.toml",
        config_class=MockRelayConfig
    )

    args = parser.parse_args(["--port", "5050", "--initial-state-volume", "0.4"])
    assert args.config == "config.toml"
    assert args.log_level == "INFO"

    result = namespace_to_dict(args)
    assert result == {"port": 5050, "initial_state": {"volume": 0.4}}
