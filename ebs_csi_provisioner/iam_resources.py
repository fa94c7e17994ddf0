import json
import logging
from typing import NamedTuple

from botocore.exceptions import BotoCoreError, ClientError

from . import constants
from .exceptions import IamOperationError, OidcIssuerError

logger = logging.getLogger(__name__)

ALREADY_EXISTS_CODE = "EntityAlreadyExists"

class OidcProvider(NamedTuple):
    """An EKS cluster's OIDC identity provider, split out of its issuer URL."""
    region: str
    oidc_id: str

    @property
    def host_path(self) -> str:
        return f"oidc.eks.{self.region}.amazonaws.com/id/{self.oidc_id}"

    def arn(self, account_id: str) -> str:
        return f"arn:aws:iam::{account_id}:oidc-provider/{self.host_path}"

def parse_oidc_issuer(issuer_url: str, region: str) -> OidcProvider:
    """Parses an issuer URL of the form https://oidc.eks.<region>.amazonaws.com/id/<id>.

    The prefix must match exactly, including the region the run was invoked
    with. Anything else raises OidcIssuerError.
    """
    if not issuer_url:
        raise OidcIssuerError("No OIDC Issuer URL found")
    prefix = constants.OIDC_ISSUER_PREFIX_TEMPLATE.format(region=region)
    if not issuer_url.startswith(prefix):
        raise OidcIssuerError(
            f"OIDC Issuer URL '{issuer_url}' does not start with '{prefix}'"
        )
    oidc_id = issuer_url[len(prefix):]
    if not oidc_id or "/" in oidc_id:
        raise OidcIssuerError(f"Unable to get OIDC ID from the OIDC Issuer URL '{issuer_url}'")
    logger.debug(f"Parsed OIDC id {oidc_id} from issuer {issuer_url}")
    return OidcProvider(region=region, oidc_id=oidc_id)

def derive_oidc_id(issuer_url: str, region: str) -> str:
    return parse_oidc_issuer(issuer_url, region).oidc_id

def generate_trust_policy(account_id: str, region: str, oidc_id: str) -> dict:
    """Builds the role trust policy for the EBS CSI controller service account."""
    provider = OidcProvider(region=region, oidc_id=oidc_id)
    policy = {
        "Version": constants.POLICY_DOCUMENT_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {
                    "Federated": provider.arn(account_id)
                },
                "Action": "sts:AssumeRoleWithWebIdentity",
                "Condition": {
                    "StringEquals": {
                        f"{provider.host_path}:sub": constants.SERVICE_ACCOUNT_SUBJECT
                    }
                }
            }
        ]
    }
    logger.debug(f"Generated trust policy for OIDC provider ARN: {provider.arn(account_id)}")
    return policy

def policy_arn(account_id: str, policy_name: str = constants.POLICY_NAME) -> str:
    return f"arn:aws:iam::{account_id}:policy/{policy_name}"

def _error_code(error: Exception) -> str | None:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None

def _as_aws_tags(tags: dict) -> list[dict]:
    return [{"Key": key, "Value": value} for key, value in tags.items()]

def create_managed_policy(iam_client, document: dict, account_id: str, tags: dict,
                          skip_existing: bool = False,
                          policy_name: str = constants.POLICY_NAME) -> str:
    """Registers the managed policy and returns its ARN."""
    try:
        response = iam_client.create_policy(
            PolicyName=policy_name,
            PolicyDocument=json.dumps(document),
            Description=f"Permissions for the Amazon EBS CSI driver ({constants.REFERENCE_POLICY_VERSION})",
            Tags=_as_aws_tags(tags),
        )
    except (ClientError, BotoCoreError) as e:
        code = _error_code(e)
        if skip_existing and code == ALREADY_EXISTS_CODE:
            existing_arn = policy_arn(account_id, policy_name)
            logger.warning(f"Policy {policy_name} already exists, reusing {existing_arn}")
            return existing_arn
        raise IamOperationError("CreatePolicy", str(e), code)
    arn = response["Policy"]["Arn"]
    logger.info(f"Created IAM policy: {arn}")
    return arn

def create_role(iam_client, trust_document: dict, tags: dict,
                skip_existing: bool = False,
                role_name: str = constants.ROLE_NAME) -> str:
    """Creates the driver role trusting the cluster's OIDC provider and returns its ARN.

    With skip_existing an existing role is kept and its trust policy is
    replaced so it points at the current OIDC provider.
    """
    trust_json = json.dumps(trust_document)
    try:
        response = iam_client.create_role(
            RoleName=role_name,
            AssumeRolePolicyDocument=trust_json,
            Description="Role assumed by the EBS CSI controller service account",
            Tags=_as_aws_tags(tags),
        )
    except (ClientError, BotoCoreError) as e:
        code = _error_code(e)
        if not (skip_existing and code == ALREADY_EXISTS_CODE):
            raise IamOperationError("CreateRole", str(e), code)
        logger.warning(f"Role {role_name} already exists, updating its trust policy")
        try:
            iam_client.update_assume_role_policy(RoleName=role_name, PolicyDocument=trust_json)
            response = iam_client.get_role(RoleName=role_name)
        except (ClientError, BotoCoreError) as inner:
            raise IamOperationError("UpdateAssumeRolePolicy", str(inner), _error_code(inner))
    arn = response["Role"]["Arn"]
    logger.info(f"Using IAM role: {arn}")
    return arn

def attach_policy(iam_client, policy_arn: str, role_name: str = constants.ROLE_NAME) -> None:
    """Attaches the managed policy to the role."""
    try:
        iam_client.attach_role_policy(PolicyArn=policy_arn, RoleName=role_name)
    except (ClientError, BotoCoreError) as e:
        raise IamOperationError("AttachRolePolicy", str(e), _error_code(e))
    logger.info(f"Attached policy {policy_arn} to role {role_name}")
