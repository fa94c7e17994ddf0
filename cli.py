#!/usr/bin/env python3
"""
EBS CSI Provisioner CLI
Creates the IAM policy and OIDC-trusted role for the Amazon EBS CSI driver on EKS
"""

import json
import logging
import re
import sys
import traceback
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ebs_csi_provisioner import __version__, config_loader, constants
from ebs_csi_provisioner.exceptions import ProvisioningError
from ebs_csi_provisioner.policy_sources import policy_source_from_options
from ebs_csi_provisioner.provisioner import Provisioner

console = Console()
err_console = Console(stderr=True)

HELP_FLAGS = ("-h", "--help")


# Exit codes for callers and CI/CD systems
class ExitCodes:
    SUCCESS = constants.EXIT_SUCCESS
    USAGE_ERROR = constants.EXIT_USAGE_ERROR
    MISSING_ARGUMENTS = constants.EXIT_MISSING_ARGUMENTS
    AWS_ID_NOT_FOUND = constants.EXIT_AWS_ID_NOT_FOUND
    CLUSTER_NOT_FOUND = constants.EXIT_CLUSTER_NOT_FOUND
    GENERAL_ERROR = constants.EXIT_GENERAL_ERROR


class ProvisionCommand(click.Command):
    """Command that answers -h/--help wherever it appears and reports usage errors with exit 1."""

    def parse_args(self, ctx, args):
        options = args[:args.index("--")] if "--" in args else args
        if any(arg in HELP_FLAGS for arg in options):
            click.echo(ctx.get_help(), color=ctx.color)
            ctx.exit(ExitCodes.SUCCESS)
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = ExitCodes.USAGE_ERROR
            raise


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, with every field escaped."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(log_level: str, json_output: bool = False) -> logging.Logger:
    """Configure logging with optional JSON output for CI systems."""
    logger = logging.getLogger()
    logger.handlers.clear()

    if json_output:
        # Structured logging for CI/CD
        handler = logging.StreamHandler()
        handler.setFormatter(JsonLogFormatter())
    else:
        handler = RichHandler(console=err_console, show_time=True, show_path=False)

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Suppress verbose library logs
    for noisy in ("boto3", "botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def validate_sha256(ctx, param, value: Optional[str]) -> Optional[str]:
    """Validate a hex-encoded SHA-256 digest."""
    if value is None:
        return value
    if not re.fullmatch(r"[0-9a-fA-F]{64}", value):
        raise click.BadParameter(
            f"Invalid SHA-256 digest: {value}. Must be 64 hexadecimal characters."
        )
    return value.lower()


def render_result(result, json_output: bool) -> None:
    if json_output:
        click.echo(json.dumps({"status": "success", **result.to_dict()}, indent=2))
        return

    if result.dry_run:
        console.print("\n✅ Dry run completed. No IAM resources were created.", style="green")
    else:
        console.print("\n🎉 EBS CSI driver IAM role provisioned!", style="bold green")

    table = Table()
    table.add_column("Resource", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Cluster", result.cluster_name)
    table.add_row("Region", result.region)
    table.add_row("Account ID", result.account_id or "-")
    table.add_row("OIDC ID", result.oidc_id or "-")
    table.add_row("Policy ARN", result.policy_arn or "-")
    table.add_row("Role", result.role_arn or result.role_name)
    for artifact in result.artifacts:
        table.add_row("Artifact", artifact)
    console.print(table)

    if result.role_arn:
        console.print(
            f"💡 Annotate service account {constants.SERVICE_ACCOUNT_NAMESPACE}/"
            f"{constants.SERVICE_ACCOUNT_NAME} with eks.amazonaws.com/role-arn={result.role_arn}",
            style="blue",
        )


@click.command(cls=ProvisionCommand)
@click.version_option(version=__version__, prog_name="ebs-csi-provisioner")
@click.argument("cluster_name", required=False)
@click.argument("aws_region", required=False)
@click.option(
    "-p", "--profile",
    envvar="AWS_PROFILE",
    help="AWS credential profile to use (env: AWS_PROFILE)"
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False),
    envvar="EBS_CSI_OUTPUT_DIR",
    help="Directory for the generated policy files, defaults to the current directory (env: EBS_CSI_OUTPUT_DIR)"
)
@click.option(
    "--policy-url",
    help=f"Download the reference IAM policy from this URL instead of the pinned {constants.REFERENCE_POLICY_VERSION} release"
)
@click.option(
    "--policy-sha256",
    callback=validate_sha256,
    help="Expected SHA-256 of the downloaded reference policy"
)
@click.option(
    "--policy-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Use a local (vendored) reference policy instead of downloading it"
)
@click.option(
    "--tag",
    "tags",
    multiple=True,
    metavar="KEY=VALUE",
    help="Extra tag for the created policy and role, may be repeated"
)
@click.option(
    "--skip-existing",
    is_flag=True,
    envvar="EBS_CSI_SKIP_EXISTING",
    help="Reuse the policy and role if they already exist instead of failing (env: EBS_CSI_SKIP_EXISTING)"
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Run the lookups and write the policy files without creating IAM resources"
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default="INFO",
    envvar="EBS_CSI_LOG_LEVEL",
    help="Set logging level (env: EBS_CSI_LOG_LEVEL)"
)
@click.option(
    "--json-output",
    is_flag=True,
    envvar="EBS_CSI_JSON_OUTPUT",
    help="Output structured JSON logs for CI/CD (env: EBS_CSI_JSON_OUTPUT)"
)
def cli(cluster_name: Optional[str], aws_region: Optional[str], profile: Optional[str],
        output_dir: Optional[str], policy_url: Optional[str], policy_sha256: Optional[str],
        policy_file: Optional[str], tags: tuple, skip_existing: bool, dry_run: bool,
        log_level: str, json_output: bool):
    """Set up the IAM role the Amazon EBS CSI driver assumes in CLUSTER_NAME.

    Creates the AmazonEKS_EBS_CSI_Driver_Policy managed policy and the
    AmazonEKS_EBS_CSI_DriverRole role trusted by the cluster's OIDC provider
    for the kube-system/ebs-csi-controller-sa service account.
    """
    logger = setup_logging(log_level, json_output)

    if not cluster_name or not aws_region:
        logger.error("Error: Cluster name and AWS region are both required.")
        click.echo(click.get_current_context().get_usage(), err=True)
        sys.exit(ExitCodes.MISSING_ARGUMENTS)

    try:
        config = config_loader.ProvisionerConfig(
            cluster_name=cluster_name,
            region=aws_region,
            profile=profile,
            output_dir=output_dir,
            policy_source=policy_source_from_options(policy_file, policy_url, policy_sha256),
            skip_existing=skip_existing,
            dry_run=dry_run,
            tags=config_loader.parse_tag_options(tags),
        )

        if json_output:
            logger.info(f"Starting provisioning: {json.dumps({'cluster_name': cluster_name, 'region': aws_region, 'profile': profile, 'dry_run': dry_run})}")
        else:
            console.print("🚀 Provisioning IAM role for the EBS CSI driver", style="bold green")
            console.print(f"☸️  Cluster: {config.cluster_name}")
            console.print(f"🌍 Region: {config.region}")
            console.print(f"👤 Profile: {config.profile or 'default credentials'}")
            if dry_run:
                console.print("🔍 Dry run: no IAM resources will be created", style="yellow")

        provisioner = Provisioner(config)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            disable=json_output
        ) as progress:
            task = progress.add_task("Starting...", total=None)
            result = provisioner.run(
                on_step=lambda description: progress.update(task, description=description)
            )

        render_result(result, json_output)
        sys.exit(ExitCodes.SUCCESS)

    except ProvisioningError as e:
        logger.error(f"Error: {e}")
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        logger.warning("Provisioning interrupted by user")
        sys.exit(ExitCodes.GENERAL_ERROR)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if logger.level == logging.DEBUG:
            traceback.print_exc()
        sys.exit(ExitCodes.GENERAL_ERROR)


def main():
    cli()


if __name__ == "__main__":
    main()
