"""
Error taxonomy for the provisioning workflow.

Every failure raised by the workflow carries the process exit code the
command line reports for it. Only the cluster check and the account-identity
lookup have dedicated codes; everything else shares the generic one.
"""

from . import constants


class ProvisioningError(Exception):
    """Base class for fatal provisioning failures."""
    exit_code = constants.EXIT_GENERAL_ERROR


class ClusterNotFoundError(ProvisioningError):
    """The named EKS cluster is not in the account/region."""
    exit_code = constants.EXIT_CLUSTER_NOT_FOUND

    def __init__(self, cluster_name: str, region: str):
        self.cluster_name = cluster_name
        self.region = region
        super().__init__(f"Cluster '{cluster_name}' does not exist in region {region}")


class AccountIdError(ProvisioningError):
    """The caller's AWS account id could not be resolved."""
    exit_code = constants.EXIT_AWS_ID_NOT_FOUND


class PolicyFetchError(ProvisioningError):
    """The reference IAM policy document could not be obtained."""


class OidcIssuerError(ProvisioningError):
    """The cluster's OIDC issuer is missing or has an unexpected shape."""


class IamOperationError(ProvisioningError):
    """An IAM create/attach call failed."""

    def __init__(self, operation: str, message: str, error_code: str | None = None):
        self.operation = operation
        self.error_code = error_code
        super().__init__(f"{operation} failed: {message}")
