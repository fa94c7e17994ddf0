"""
EBS CSI Provisioner Constants
Fixed names and locations shared by the provisioning workflow
"""

# IAM resources created for the driver
POLICY_NAME = "AmazonEKS_EBS_CSI_Driver_Policy"
ROLE_NAME = "AmazonEKS_EBS_CSI_DriverRole"

# Kubernetes identity allowed to assume the role
SERVICE_ACCOUNT_NAMESPACE = "kube-system"
SERVICE_ACCOUNT_NAME = "ebs-csi-controller-sa"
SERVICE_ACCOUNT_SUBJECT = f"system:serviceaccount:{SERVICE_ACCOUNT_NAMESPACE}:{SERVICE_ACCOUNT_NAME}"

# Reference policy pinned to the v0.9.0 driver release
REFERENCE_POLICY_VERSION = "v0.9.0"
REFERENCE_POLICY_URL = (
    "https://raw.githubusercontent.com/kubernetes-sigs/aws-ebs-csi-driver/"
    f"{REFERENCE_POLICY_VERSION}/docs/example-iam-policy.json"
)
POLICY_DOWNLOAD_TIMEOUT = 30  # seconds

# Artifacts written to the output directory
REFERENCE_POLICY_FILE = "example-iam-policy.json"
TRUST_POLICY_FILE = "trust-policy.json"

# OIDC issuer shape for EKS clusters
OIDC_ISSUER_PREFIX_TEMPLATE = "https://oidc.eks.{region}.amazonaws.com/id/"
POLICY_DOCUMENT_VERSION = "2012-10-17"

# Tags applied to the policy and the role
DEFAULT_TAGS = {
    "ManagedBy": "EBS-CSI-Provisioner",
    "Tool": "boto3",
    "Purpose": "EBS-CSI-Driver-IRSA",
}

# Exit codes of the error taxonomy
EXIT_SUCCESS = 0
EXIT_USAGE_ERROR = 1
EXIT_MISSING_ARGUMENTS = 150
EXIT_AWS_ID_NOT_FOUND = 152
EXIT_CLUSTER_NOT_FOUND = 155
EXIT_GENERAL_ERROR = 160

# Validation settings
AWS_REGION_PATTERN = r"^[a-z]{2}(-gov|-iso[a-z]?)?-[a-z]+-\d+$"
MAX_CLUSTER_NAME_LENGTH = 100
