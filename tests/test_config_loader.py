"""
Tests for config_loader module
"""

import json
import os

import pytest

from ebs_csi_provisioner import constants
from ebs_csi_provisioner.config_loader import (
    ConfigError,
    ProvisionerConfig,
    load_json_file,
    parse_tag_options,
    validate_cluster_name,
    validate_region,
    write_json_file,
)
from ebs_csi_provisioner.exceptions import ProvisioningError


@pytest.mark.unit
class TestConfigError:
    """Test cases for ConfigError exception."""

    def test_config_error_inheritance(self):
        """Test that ConfigError is a provisioning failure."""
        assert issubclass(ConfigError, ProvisioningError)

    def test_config_error_exit_code(self):
        """Test that ConfigError uses the generic exit code."""
        assert ConfigError("bad").exit_code == constants.EXIT_GENERAL_ERROR


@pytest.mark.unit
class TestProvisionerConfig:
    """Test cases for ProvisionerConfig class."""

    def test_initialization(self, tmp_path):
        """Test ProvisionerConfig initialization."""
        config = ProvisionerConfig(
            cluster_name="prod-cluster",
            region="us-west-2",
            profile="ops",
            output_dir=str(tmp_path),
        )

        assert config.cluster_name == "prod-cluster"
        assert config.region == "us-west-2"
        assert config.profile == "ops"
        assert config.output_dir == str(tmp_path)
        assert config.skip_existing is False
        assert config.dry_run is False
        assert config.policy_source is None

    def test_defaults(self, tmp_path, monkeypatch):
        """Test default profile and output directory."""
        monkeypatch.chdir(tmp_path)
        config = ProvisionerConfig("prod-cluster", "us-west-2")

        assert config.profile is None
        assert config.output_dir == os.getcwd()

    def test_empty_profile_means_default_credentials(self):
        """Test that an empty profile string is treated as absent."""
        config = ProvisionerConfig("prod-cluster", "us-west-2", profile="")
        assert config.profile is None

    def test_artifact_paths(self, tmp_path):
        """Test artifact paths are placed in the output directory."""
        config = ProvisionerConfig("prod-cluster", "us-west-2", output_dir=str(tmp_path))

        assert config.reference_policy_path == str(tmp_path / "example-iam-policy.json")
        assert config.trust_policy_path == str(tmp_path / "trust-policy.json")

    def test_default_tags(self):
        """Test that default tags are applied."""
        config = ProvisionerConfig("prod-cluster", "us-west-2")
        assert config.tags == constants.DEFAULT_TAGS

    def test_custom_tags_override_defaults(self):
        """Test that custom tags are merged over defaults."""
        config = ProvisionerConfig("prod-cluster", "us-west-2", tags={"Tool": "custom", "Team": "Storage"})

        assert config.tags["Tool"] == "custom"
        assert config.tags["Team"] == "Storage"
        assert config.tags["ManagedBy"] == constants.DEFAULT_TAGS["ManagedBy"]
        assert constants.DEFAULT_TAGS["Tool"] == "boto3"

    def test_invalid_region_rejected(self):
        """Test that an invalid region raises ConfigError."""
        with pytest.raises(ConfigError, match="Invalid AWS region"):
            ProvisionerConfig("prod-cluster", "not a region")

    def test_str_representation(self):
        """Test string representation of ProvisionerConfig."""
        config = ProvisionerConfig("prod-cluster", "us-west-2")
        assert str(config) == "ProvisionerConfig(cluster_name=prod-cluster, region=us-west-2, profile=default)"


@pytest.mark.unit
class TestValidators:
    """Test cases for input validators."""

    def test_validate_cluster_name(self):
        assert validate_cluster_name("my-cluster") == "my-cluster"

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_validate_cluster_name_empty(self, value):
        with pytest.raises(ConfigError, match="must not be empty"):
            validate_cluster_name(value)

    def test_validate_cluster_name_too_long(self):
        with pytest.raises(ConfigError, match="exceeds"):
            validate_cluster_name("c" * 101)

    def test_validate_region(self):
        assert validate_region("eu-west-1") == "eu-west-1"

    @pytest.mark.parametrize("value", ["", None])
    def test_validate_region_empty(self, value):
        with pytest.raises(ConfigError, match="must not be empty"):
            validate_region(value)


@pytest.mark.unit
class TestParseTagOptions:
    """Test cases for parse_tag_options function."""

    def test_parse_tags(self):
        assert parse_tag_options(("Team=Storage", "Env=prod")) == {"Team": "Storage", "Env": "prod"}

    def test_parse_tags_value_with_equals(self):
        assert parse_tag_options(("Note=a=b",)) == {"Note": "a=b"}

    def test_parse_tags_empty(self):
        assert parse_tag_options(()) == {}
        assert parse_tag_options(None) == {}

    @pytest.mark.parametrize("value", ["NoSeparator", "=value"])
    def test_parse_tags_invalid(self, value):
        with pytest.raises(ConfigError, match="Invalid tag"):
            parse_tag_options((value,))


@pytest.mark.unit
class TestJsonFiles:
    """Test cases for load_json_file and write_json_file."""

    def test_load_valid_json_object(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text(json.dumps({"Version": "2012-10-17", "Statement": []}))

        assert load_json_file(str(path)) == {"Version": "2012-10-17", "Statement": []}

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Required file not found"):
            load_json_file(str(tmp_path / "missing.json"))

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(ConfigError, match="Error decoding JSON"):
            load_json_file(str(path))

    def test_load_json_list_rejected(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")

        with pytest.raises(ConfigError, match="not a valid JSON object"):
            load_json_file(str(path))

    def test_write_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "trust-policy.json"
        document = {"Version": "2012-10-17"}

        assert write_json_file(str(path), document) == str(path)
        assert json.loads(path.read_text()) == document
