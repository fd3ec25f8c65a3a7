"""Main CLI entry point."""

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from rollout_pilot.config.models import BlueGreenDeployConfig, RollbackConfig
from rollout_pilot.config.parser import Config, ConfigValidationError
from rollout_pilot.deployment.bluegreen import BlueGreenDriver
from rollout_pilot.deployment.manifests import Workspace
from rollout_pilot.deployment.models import RevisionType, RollbackMode
from rollout_pilot.platforms.codedeploy import CodeDeployService
from rollout_pilot.platforms.ecs import EcsRuntime
from rollout_pilot.platforms.kubernetes import KubectlHelmPlatform
from rollout_pilot.platforms.s3 import S3ObjectStore
from rollout_pilot.rollback.coordinator import RollbackCoordinator, RollbackReport
from rollout_pilot.rollback.k8s import K8sRollbackCoordinator, K8sRollbackReport, eks_kubeconfig_bootstrap
from rollout_pilot.rollback.selector import current_deployed, parse_helm_history, select_rollback_target
from rollout_pilot.utils.aws_client import scoped_session
from rollout_pilot.utils.errors import DeploymentError, DeploymentFailedError, ValidationError, WaitTimeoutError
from rollout_pilot.utils.logging import get_logger, setup_logging
from rollout_pilot.utils.shell import CommandRunner

console = Console()
logger = get_logger(__name__)

EXIT_FAILURE = 1
EXIT_CONFIG = 2

ROLLBACK_MODES = [m.value for m in RollbackMode] + ['manualEcsRollback']


@click.group()
@click.option('--profile', help='AWS profile to use')
@click.option('--region', help='AWS region (overrides the config file)')
@click.option('--config', 'config_path', default='rollout.yaml', help='Path to configuration file')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.option('--log-dir', default='.rollout/logs', help='Directory for JSON log files; empty to disable')
@click.pass_context
def cli(ctx, profile, region, config_path, log_level, log_dir):
    """Blue/green deployment and rollback orchestration."""
    ctx.ensure_object(dict)
    ctx.obj['profile'] = profile
    ctx.obj['region'] = region
    ctx.obj['config_path'] = config_path

    # Setup logging
    setup_logging(log_level, log_dir or None)


def load_config(config_path: str) -> Config:
    """Load and validate configuration file; a missing file means defaults."""
    try:
        return Config(config_path).load()
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(escape(str(e)))
        sys.exit(EXIT_CONFIG)


def fail(error: DeploymentError, title: str) -> None:
    """Print a DeploymentError and exit with the matching code."""
    if isinstance(error, ValidationError):
        console.print(f"[red]Configuration error:[/red] {escape(str(error))}")
        sys.exit(EXIT_CONFIG)

    console.print(Panel.fit(escape(error.to_user_message()), title=title, border_style="red"))
    sys.exit(EXIT_FAILURE)


def region_override(ctx) -> Dict[str, Any]:
    return {'aws.region': ctx.obj.get('region')}


def print_rollback_report(report: RollbackReport) -> None:
    table = Table(show_header=True, header_style="bold", title=f"Rollback {report.deployment_id}")
    table.add_column("Phase", style="cyan")
    table.add_column("Status")
    table.add_column("Error", style="dim")
    for phase, record in (('before', report.before), ('after action', report.after), ('final', report.final)):
        table.add_row(phase, record.status_name, record.error_message or '')
    console.print(table)

    for action in report.actions:
        mark = "[green]✓[/green]" if action.ok else "[yellow]✗ (ignored)[/yellow]"
        line = f"  {mark} {action.action}"
        if not action.ok:
            line += f": {escape(action.error_text)}"
        console.print(line)

    if not report.settled:
        console.print("[yellow]⚠ Status did not reach a terminal state within the settle window[/yellow]")

    if report.deployment_succeeded:
        console.print("[green]Deployment succeeded — no rollback required.[/green]")
    else:
        console.print(f"Rollback/stop path executed. Final status: [bold]{report.final_status}[/bold]")


def print_k8s_report(report: K8sRollbackReport) -> None:
    lines = [
        f"Mode: {report.mode.value}",
        f"Namespace: {report.namespace}",
        f"Target revision: {report.target_revision or 'previous'}",
    ]
    for diagnostics in (report.before, report.after):
        if diagnostics is not None:
            lines.append(escape(diagnostics.summary()))
    console.print(Panel.fit("\n".join(lines), title="Kubernetes Rollback Complete", border_style="green"))


def run_rollback(aws, rollback_cfg: RollbackConfig) -> RollbackReport:
    coordinator = RollbackCoordinator(
        rollback_cfg,
        CodeDeployService(aws.get_client('codedeploy')),
        EcsRuntime(aws.get_client('ecs'))
    )
    return coordinator.run()


def resolve_on_failure(cfg: Config, ctx, deploy_cfg: BlueGreenDeployConfig, mode: str) -> RollbackConfig:
    """Build and validate the rollback configuration used after a failed deploy.

    The deployment id is not known yet; a placeholder lets every other
    required key be checked before the deployment starts.
    """
    rollback_cfg = cfg.rollback(mode=mode, deployment_id='pending', **region_override(ctx))
    if not rollback_cfg.aws.region:
        rollback_cfg = rollback_cfg.model_copy(update={'aws': deploy_cfg.aws})
    rollback_cfg.validate_for_run()
    return rollback_cfg


@cli.command()
@click.option('--workspace', default='.', type=click.Path(file_okay=False), help='Directory holding the manifests')
@click.option('--image', help='Image to promote into the task definition')
@click.option('--container-name', help='Container receiving the image')
@click.option('--use-sample-resources/--no-sample-resources', default=None, help='Render bundled templates')
@click.option('--revision-type', type=click.Choice([t.value for t in RevisionType]), help='Revision transport')
@click.option('--bucket', help='S3 bucket for reference-based revisions')
@click.option('--key-prefix', help='S3 key prefix for reference-based revisions')
@click.option('--job-name', envvar='JOB_NAME', help='Pipeline job name (bundle naming)')
@click.option('--build-number', envvar='BUILD_NUMBER', help='Pipeline build number (bundle naming)')
@click.option('--on-failure', type=click.Choice(ROLLBACK_MODES), help='Rollback mode to run if the deployment fails')
@click.pass_context
def deploy(ctx, workspace, image, container_name, use_sample_resources, revision_type, bucket, key_prefix,
           job_name, build_number, on_failure):
    """Run a blue/green deployment and wait for it to finish."""
    cfg = load_config(ctx.obj['config_path'])

    try:
        deploy_cfg = cfg.deploy(**{
            'image': image,
            'container_name': container_name,
            'use_sample_resources': use_sample_resources,
            'revision.type': revision_type,
            'revision.bucket': bucket,
            'revision.key_prefix': key_prefix,
            'build.job_name': job_name,
            'build.build_number': build_number,
            **region_override(ctx)
        })
        resolved_type = deploy_cfg.validate_for_run()
        rollback_cfg = resolve_on_failure(cfg, ctx, deploy_cfg, on_failure) if on_failure else None
    except ValidationError as e:
        fail(e, "Deployment Failed")

    console.print(Panel.fit(
        f"[bold]Blue/Green deployment[/bold]\n"
        f"Application: {deploy_cfg.codedeploy.application_name}\n"
        f"Deployment group: {deploy_cfg.codedeploy.deployment_group}\n"
        f"Region: {deploy_cfg.aws.region}\n"
        f"Revision: {resolved_type.value}\n"
        f"Image: {deploy_cfg.image or '(unchanged)'}\n"
        f"On failure: {on_failure or 'none'}",
        title="Deployment Configuration",
        border_style="cyan"
    ))

    try:
        with scoped_session(
            deploy_cfg.aws.region,
            role_arn=deploy_cfg.aws.role_arn or None,
            session_name=deploy_cfg.build.session_name(),
            profile=ctx.obj.get('profile')
        ) as aws:
            driver = BlueGreenDriver(
                deploy_cfg,
                CodeDeployService(aws.get_client('codedeploy')),
                object_store=S3ObjectStore(aws.get_client('s3')) if resolved_type == RevisionType.S3 else None,
                workspace=Workspace(workspace)
            )
            try:
                outcome = driver.deploy()
            except (DeploymentFailedError, WaitTimeoutError):
                if rollback_cfg is not None and driver.deployment_id:
                    console.print(f"[yellow]Deployment failed → running rollback mode {rollback_cfg.mode}[/yellow]")
                    report = run_rollback(aws, rollback_cfg.model_copy(update={'deployment_id': driver.deployment_id}))
                    print_rollback_report(report)
                raise
    except DeploymentError as e:
        fail(e, "Deployment Failed")

    console.print(Panel.fit(
        f"[green]✓ ECS Blue/Green deployment succeeded[/green]\n\n"
        f"Deployment: {outcome.deployment_id}\n"
        f"Revision: {outcome.revision.describe()}\n"
        f"Duration: {outcome.elapsed:.2f}s",
        title="Deployment Complete",
        border_style="green"
    ))


@cli.command()
@click.option('--deployment-id', help='Deployment to act on')
@click.option('--mode', type=click.Choice(ROLLBACK_MODES), help='Rollback mode')
@click.option('--cluster', help='ECS cluster (manualRedeploy)')
@click.option('--service', help='ECS service (manualRedeploy)')
@click.option('--task-definition', help='Previous task definition ARN (manualRedeploy)')
@click.option('--job-name', envvar='JOB_NAME', help='Pipeline job name (session naming)')
@click.option('--build-number', envvar='BUILD_NUMBER', help='Pipeline build number (session naming)')
@click.pass_context
def rollback(ctx, deployment_id, mode, cluster, service, task_definition, job_name, build_number):
    """Stop, auto-roll-back or manually redeploy a blue/green deployment."""
    cfg = load_config(ctx.obj['config_path'])

    try:
        rollback_cfg = cfg.rollback(**{
            'deployment_id': deployment_id,
            'mode': mode,
            'manual_redeploy.cluster': cluster,
            'manual_redeploy.service': service,
            'manual_redeploy.task_definition': task_definition,
            'build.job_name': job_name,
            'build.build_number': build_number,
            **region_override(ctx)
        })
        rollback_cfg.validate_for_run()
    except ValidationError as e:
        fail(e, "Rollback Failed")

    try:
        with scoped_session(
            rollback_cfg.aws.region,
            role_arn=rollback_cfg.aws.role_arn or None,
            session_name=rollback_cfg.build.session_name(),
            profile=ctx.obj.get('profile')
        ) as aws:
            report = run_rollback(aws, rollback_cfg)
    except DeploymentError as e:
        fail(e, "Rollback Failed")

    print_rollback_report(report)


@cli.command('k8s-rollback')
@click.option('--mode', type=click.Choice(['helmRollback', 'kubectlUndo']), help='Rollback mode')
@click.option('--namespace', help='Kubernetes namespace')
@click.option('--release', help='Helm release (helmRollback)')
@click.option('--revision', help='Helm revision; auto-detected when omitted')
@click.option('--kind', help='Workload kind (kubectlUndo)')
@click.option('--name', help='Workload name (kubectlUndo)')
@click.option('--to-revision', help='Rollout revision (kubectlUndo); previous when omitted')
@click.option('--diagnostics/--no-diagnostics', default=None, help='Capture diagnostics around the rollback')
@click.option('--kubectl', 'kubectl_binary', default='kubectl', help='kubectl executable')
@click.option('--helm', 'helm_binary', default='helm', help='helm executable')
@click.pass_context
def k8s_rollback(ctx, mode, namespace, release, revision, kind, name, to_revision, diagnostics,
                 kubectl_binary, helm_binary):
    """Roll back a Kubernetes release or workload."""
    cfg = load_config(ctx.obj['config_path'])

    try:
        k8s_cfg = cfg.k8s_rollback(**{
            'mode': mode,
            'namespace': namespace,
            'helm.release': release,
            'helm.revision': revision,
            'kubectl.kind': kind,
            'kubectl.name': name,
            'kubectl.to_revision': to_revision,
            'diagnostics.enabled': diagnostics,
            'eks.region': ctx.obj.get('region')
        })
        k8s_cfg.validate_for_run()
    except ValidationError as e:
        fail(e, "Kubernetes Rollback Failed")

    runner = CommandRunner()
    platform = KubectlHelmPlatform(
        runner,
        kubectl_binary=kubectl_binary,
        helm_binary=helm_binary,
        kubeconfig_path=k8s_cfg.eks.kubeconfig_path if k8s_cfg.eks.enabled else None
    )
    coordinator = K8sRollbackCoordinator(k8s_cfg, platform, eks_bootstrap=eks_kubeconfig_bootstrap(runner))

    try:
        report = coordinator.run()
    except DeploymentError as e:
        fail(e, "Kubernetes Rollback Failed")

    print_k8s_report(report)


@cli.command('select-revision')
@click.argument('history_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--release', default='', help='Release name, for messages')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json']), default='table', help='Output format')
def select_revision(history_file, release, output_format):
    """Pick the rollback target from a saved `helm history -o json` file."""
    try:
        entries = parse_helm_history(Path(history_file).read_text(encoding='utf-8'), release=release)
        target = select_rollback_target(entries)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] {history_file} is not valid JSON: {escape(str(e))}")
        sys.exit(EXIT_CONFIG)
    except DeploymentError as e:
        fail(e, "No Rollback Target")

    current = current_deployed(entries)

    if output_format == 'json':
        console.print_json(data={
            'current': current.sequence_number if current else None,
            'target': target.sequence_number,
            'status': target.status.value
        })
        return

    table = Table(show_header=True, header_style="bold", title=f"Revision history {release}".strip())
    table.add_column("Revision", justify="right")
    table.add_column("Status")
    table.add_column("Updated", style="dim")
    table.add_column("", style="cyan")
    for entry in sorted(entries, key=lambda e: e.sequence_number):
        marker = ''
        if entry is target:
            marker = '← rollback target'
        elif current is not None and entry is current:
            marker = 'current'
        table.add_row(str(entry.sequence_number), entry.status.value, entry.timestamp or '', marker)
    console.print(table)
    console.print(f"Rollback target: [bold]{target.sequence_number}[/bold]")


if __name__ == '__main__':
    cli()
