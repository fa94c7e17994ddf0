import os
import re
import json
import logging
from typing import Optional

from . import constants
from .exceptions import ProvisioningError

logger = logging.getLogger(__name__)

class ConfigError(ProvisioningError):
    """Custom exception for invalid invocation parameters or config files."""
    pass

class ProvisionerConfig:
    """Invocation parameters threaded through every step of a provisioning run."""
    def __init__(self, cluster_name: str, region: str, profile: Optional[str] = None,
                 output_dir: Optional[str] = None, policy_source=None,
                 skip_existing: bool = False, dry_run: bool = False,
                 tags: Optional[dict] = None):
        self.cluster_name = validate_cluster_name(cluster_name)
        self.region = validate_region(region)
        self.profile = profile or None
        self.output_dir = output_dir or os.getcwd()
        self.policy_source = policy_source
        self.skip_existing = skip_existing
        self.dry_run = dry_run
        self.tags = _prepare_tags(tags)

    @property
    def reference_policy_path(self) -> str:
        return os.path.join(self.output_dir, constants.REFERENCE_POLICY_FILE)

    @property
    def trust_policy_path(self) -> str:
        return os.path.join(self.output_dir, constants.TRUST_POLICY_FILE)

    def __str__(self):
        return (f"ProvisionerConfig(cluster_name={self.cluster_name}, region={self.region}, "
                f"profile={self.profile or 'default'})")

def validate_cluster_name(value: str) -> str:
    """Checks the cluster name is a non-empty string within EKS limits."""
    if not value or not value.strip():
        raise ConfigError("Cluster name must not be empty")
    if len(value) > constants.MAX_CLUSTER_NAME_LENGTH:
        raise ConfigError(
            f"Cluster name '{value}' exceeds {constants.MAX_CLUSTER_NAME_LENGTH} characters"
        )
    return value

def validate_region(value: str) -> str:
    """Checks the region looks like an AWS region identifier, e.g. us-west-2."""
    if not value or not value.strip():
        raise ConfigError("AWS region must not be empty")
    if not re.match(constants.AWS_REGION_PATTERN, value):
        raise ConfigError(f"Invalid AWS region format: {value}")
    return value

def _prepare_tags(extra_tags: Optional[dict]) -> dict:
    """Merges default tags with caller-supplied ones."""
    current_tags = constants.DEFAULT_TAGS.copy()
    if isinstance(extra_tags, dict):
        current_tags.update(extra_tags)
    return current_tags

def parse_tag_options(values) -> dict:
    """Turns repeated KEY=VALUE strings into a tag dict."""
    tags = {}
    for item in values or ():
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigError(f"Invalid tag '{item}'. Expected KEY=VALUE.")
        tags[key] = value
    return tags

def load_json_file(file_path: str) -> dict:
    """Helper to load a JSON object from disk."""
    if not os.path.exists(file_path):
        raise ConfigError(f"Required file not found: {file_path}")
    try:
        with open(file_path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error decoding JSON from {file_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Error reading file {file_path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"File {file_path} is not a valid JSON object.")
    logger.debug(f"Successfully loaded JSON file: {file_path}")
    return data

def write_json_file(file_path: str, document: dict) -> str:
    """Writes a policy document artifact, creating the parent directory if needed."""
    parent = os.path.dirname(file_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    try:
        with open(file_path, 'w') as f:
            json.dump(document, f, indent=2)
            f.write("\n")
    except OSError as e:
        raise ConfigError(f"Error writing file {file_path}: {e}")
    logger.debug(f"Wrote artifact: {file_path}")
    return file_path
