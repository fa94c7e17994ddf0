"""
EBS CSI Provisioner
Runs the fixed sequence of AWS calls that links the driver's IAM role to an EKS cluster
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
    ProfileNotFound,
)

from ebs_csi_provisioner import constants, iam_resources
from ebs_csi_provisioner.config_loader import ProvisionerConfig, write_json_file
from ebs_csi_provisioner.exceptions import (
    AccountIdError,
    ClusterNotFoundError,
    OidcIssuerError,
    ProvisioningError,
)
from ebs_csi_provisioner.policy_sources import UrlPolicySource

logger = logging.getLogger(__name__)

# Error codes meaning the caller could not be authenticated at all
CREDENTIAL_ERROR_CODES = {
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "ExpiredToken",
    "ExpiredTokenException",
    "SignatureDoesNotMatch",
}


def _is_credential_error(error: Exception) -> bool:
    if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
        return True
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code") in CREDENTIAL_ERROR_CODES
    return False


@dataclass
class ProvisioningResult:
    """What a run produced, for reporting."""
    cluster_name: str
    region: str
    account_id: Optional[str] = None
    oidc_id: Optional[str] = None
    policy_arn: Optional[str] = None
    role_name: str = constants.ROLE_NAME
    role_arn: Optional[str] = None
    dry_run: bool = False
    artifacts: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "cluster_name": self.cluster_name,
            "region": self.region,
            "account_id": self.account_id,
            "oidc_id": self.oidc_id,
            "policy_arn": self.policy_arn,
            "role_name": self.role_name,
            "role_arn": self.role_arn,
            "dry_run": self.dry_run,
            "artifacts": list(self.artifacts),
        }


class Provisioner:
    """Provisions the IAM policy and role the EBS CSI driver assumes through IRSA."""

    def __init__(self, config: ProvisionerConfig, session: Optional[boto3.Session] = None):
        self.config = config
        self.policy_source = config.policy_source or UrlPolicySource()
        self._session = session
        self._clients = {}

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            session_opts = {"region_name": self.config.region}
            if self.config.profile:
                session_opts["profile_name"] = self.config.profile
            try:
                self._session = boto3.Session(**session_opts)
            except ProfileNotFound as e:
                raise AccountIdError(f"Unable to find/load AWS ID: {e}")
            logger.debug(f"Created boto3 session for region {self.config.region} "
                         f"(profile: {self.config.profile or 'default'})")
        return self._session

    def _client(self, service: str):
        if service not in self._clients:
            self._clients[service] = self.session.client(service)
        return self._clients[service]

    def cluster_exists(self, name: Optional[str] = None) -> bool:
        """Checks the cluster name against every cluster in the region, exact match only."""
        name = name or self.config.cluster_name
        try:
            paginator = self._client("eks").get_paginator("list_clusters")
            for page in paginator.paginate():
                if name in page.get("clusters", []):
                    logger.debug(f"Found cluster {name}")
                    return True
        except (ClientError, BotoCoreError) as e:
            if _is_credential_error(e):
                raise AccountIdError(f"Unable to find/load AWS ID: {e}")
            raise ProvisioningError(f"Unable to list EKS clusters in {self.config.region}: {e}")
        return False

    def resolve_account_id(self) -> str:
        try:
            account_id = self._client("sts").get_caller_identity()["Account"]
        except (ClientError, BotoCoreError) as e:
            raise AccountIdError(f"Unable to find/load AWS ID: {e}")
        logger.info(f"Resolved AWS account ID: {account_id}")
        return account_id

    def fetch_reference_policy(self) -> dict:
        """Fetches the reference policy document and persists it as an artifact."""
        document = self.policy_source.fetch()
        write_json_file(self.config.reference_policy_path, document)
        logger.info(f"Saved reference IAM policy to {self.config.reference_policy_path}")
        return document

    def create_managed_policy(self, document: dict, account_id: str) -> str:
        return iam_resources.create_managed_policy(
            self._client("iam"), document, account_id, self.config.tags,
            skip_existing=self.config.skip_existing,
        )

    def resolve_oidc_issuer(self, cluster_name: Optional[str] = None) -> str:
        cluster_name = cluster_name or self.config.cluster_name
        try:
            cluster = self._client("eks").describe_cluster(name=cluster_name)["cluster"]
        except (ClientError, BotoCoreError) as e:
            raise OidcIssuerError(f"No OIDC Issuer URL found for cluster {cluster_name}: {e}")
        issuer = cluster.get("identity", {}).get("oidc", {}).get("issuer")
        if not issuer:
            raise OidcIssuerError(f"No OIDC Issuer URL found for cluster {cluster_name}")
        logger.info(f"OIDC issuer for {cluster_name}: {issuer}")
        return issuer

    def derive_oidc_id(self, issuer_url: str) -> str:
        return iam_resources.derive_oidc_id(issuer_url, self.config.region)

    def build_trust_policy(self, account_id: str, oidc_id: str) -> dict:
        """Generates the trust policy and persists it as an artifact."""
        document = iam_resources.generate_trust_policy(account_id, self.config.region, oidc_id)
        write_json_file(self.config.trust_policy_path, document)
        logger.info(f"Generated {self.config.trust_policy_path}:\n{json.dumps(document, indent=2)}")
        return document

    def create_role(self, trust_document: dict) -> str:
        return iam_resources.create_role(
            self._client("iam"), trust_document, self.config.tags,
            skip_existing=self.config.skip_existing,
        )

    def attach_policy(self, policy_arn: str, role_name: str = constants.ROLE_NAME) -> None:
        iam_resources.attach_policy(self._client("iam"), policy_arn, role_name)

    def run(self, on_step: Optional[Callable[[str], None]] = None) -> ProvisioningResult:
        """Runs every step in order, stopping at the first failure.

        Nothing created by earlier steps is removed when a later one fails.
        """
        def step(description: str) -> None:
            logger.debug(description)
            if on_step:
                on_step(description)

        config = self.config
        result = ProvisioningResult(cluster_name=config.cluster_name, region=config.region,
                                    dry_run=config.dry_run)

        step(f"Checking cluster {config.cluster_name} exists...")
        if not self.cluster_exists():
            raise ClusterNotFoundError(config.cluster_name, config.region)

        step("Resolving AWS account ID...")
        result.account_id = self.resolve_account_id()

        step(f"Fetching reference IAM policy from {self.policy_source.describe()}...")
        policy_document = self.fetch_reference_policy()
        result.artifacts.append(config.reference_policy_path)

        if config.dry_run:
            result.policy_arn = iam_resources.policy_arn(result.account_id)
            logger.info(f"Dry run: skipping creation of policy {constants.POLICY_NAME}")
        else:
            step(f"Creating IAM policy {constants.POLICY_NAME}...")
            result.policy_arn = self.create_managed_policy(policy_document, result.account_id)

        step("Resolving OIDC issuer...")
        issuer_url = self.resolve_oidc_issuer()
        result.oidc_id = self.derive_oidc_id(issuer_url)

        step("Generating trust policy...")
        trust_document = self.build_trust_policy(result.account_id, result.oidc_id)
        result.artifacts.append(config.trust_policy_path)

        if config.dry_run:
            logger.info(f"Dry run: skipping creation of role {constants.ROLE_NAME} "
                        "and policy attachment")
            return result

        step(f"Creating IAM role {constants.ROLE_NAME}...")
        result.role_arn = self.create_role(trust_document)

        step("Attaching policy to role...")
        self.attach_policy(result.policy_arn, result.role_name)

        logger.info(f"Provisioning for cluster {config.cluster_name} completed")
        return result
