"""
EBS CSI Provisioner - IAM role setup for the Amazon EBS CSI driver on EKS

This package creates the IAM policy and role the EBS CSI controller assumes
through the cluster's OIDC identity provider (IRSA).
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"
__email__ = "devops@yourorg.com"

# Core components
from . import constants
from . import exceptions
from . import config_loader
from . import policy_sources
from . import iam_resources
from . import provisioner

__all__ = [
    "constants",
    "exceptions",
    "config_loader",
    "policy_sources",
    "iam_resources",
    "provisioner",
]
