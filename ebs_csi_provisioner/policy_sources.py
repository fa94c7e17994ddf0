"""
Reference Policy Sources
Providers for the IAM policy document registered as the driver's managed policy
"""

import hashlib
import json
import logging
from typing import Optional

import requests

from . import constants
from .config_loader import ConfigError, load_json_file
from .exceptions import PolicyFetchError

logger = logging.getLogger(__name__)


def _parse_policy_document(raw: bytes, origin: str) -> dict:
    try:
        document = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise PolicyFetchError(f"Policy document from {origin} is not valid JSON: {e}")
    if not isinstance(document, dict) or "Statement" not in document:
        raise PolicyFetchError(f"Policy document from {origin} has no Statement block")
    return document


class UrlPolicySource:
    """Downloads the policy document over HTTPS, optionally pinning its SHA-256."""

    def __init__(self, url: str = constants.REFERENCE_POLICY_URL,
                 sha256: Optional[str] = None,
                 timeout: int = constants.POLICY_DOWNLOAD_TIMEOUT):
        self.url = url
        self.sha256 = sha256.lower() if sha256 else None
        self.timeout = timeout

    def describe(self) -> str:
        return self.url

    def fetch(self) -> dict:
        logger.info(f"Downloading reference IAM policy from {self.url}")
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise PolicyFetchError(f"Unable to download policy document from {self.url}: {e}")

        content = response.content
        if self.sha256:
            digest = hashlib.sha256(content).hexdigest()
            if digest != self.sha256:
                raise PolicyFetchError(
                    f"Checksum mismatch for {self.url}: expected {self.sha256}, got {digest}"
                )
            logger.debug(f"Checksum verified for {self.url}")
        else:
            logger.warning("Reference policy downloaded without checksum verification")

        return _parse_policy_document(content, self.url)


class FilePolicySource:
    """Reads a vendored policy document from the local filesystem."""

    def __init__(self, path: str):
        self.path = path

    def describe(self) -> str:
        return self.path

    def fetch(self) -> dict:
        logger.info(f"Loading reference IAM policy from {self.path}")
        try:
            document = load_json_file(self.path)
        except ConfigError as e:
            raise PolicyFetchError(str(e))
        if "Statement" not in document:
            raise PolicyFetchError(f"Policy document from {self.path} has no Statement block")
        return document


def policy_source_from_options(policy_file: Optional[str] = None,
                               policy_url: Optional[str] = None,
                               policy_sha256: Optional[str] = None):
    """Picks the document provider for the given command-line options."""
    if policy_file and policy_url:
        raise ConfigError("--policy-file and --policy-url are mutually exclusive")
    if policy_file:
        if policy_sha256:
            logger.warning("--policy-sha256 is ignored for local policy files")
        return FilePolicySource(policy_file)
    return UrlPolicySource(url=policy_url or constants.REFERENCE_POLICY_URL, sha256=policy_sha256)
