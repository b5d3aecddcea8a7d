#!/usr/bin/env python3
"""
cigraph CLI

Generates, validates and inspects CI manifests from a source definition.
"""

import logging
import os
import sys
from typing import Optional, Tuple

import click

from ..config.config_loader import ConfigLoader, SourceDefinition
from ..config.global_config_loader import GeneratorSettings, load_settings
from ..core.enums import EventKind, OutputFormat
from ..core.errors import ManifestError, ValidationFailed
from ..core.models import Event
from ..pipeline.triggers import TriggerEvaluator


class GenerateCLI:
    """Command-line interface for manifest generation"""

    def __init__(self, settings: GeneratorSettings):
        self.logger = logging.getLogger(__name__)
        self.settings = settings

    def load(self, source: str) -> SourceDefinition:
        """Load a source definition from a path, or stdin when ``source`` is '-'"""
        if source == '-':
            return ConfigLoader.load_from_stream(click.get_text_stream('stdin'), self.settings, source='<stdin>')
        return ConfigLoader.load_from_yaml(source, self.settings)

    def _report_failure(self, error: Exception) -> int:
        if isinstance(error, ValidationFailed):
            click.echo(f"Manifest validation failed with {len(error.errors)} violation(s):", err=True)
            for violation in error.errors:
                click.echo(f"  - [{type(violation).__name__}] {violation}", err=True)
        else:
            click.echo(f"Error: {error}", err=True)
        return 1

    def generate(self, source: str, fmt: str, output: Optional[str], sign: bool) -> int:
        """Emit the manifest to stdout or ``output``; nothing is written on failure"""
        try:
            definition = self.load(source)
            signing_key = None
            if sign:
                signing_key = os.getenv(definition.settings.signing_key_env)
                if not signing_key:
                    raise ValueError(
                        f"--sign requires the signing key in ${definition.settings.signing_key_env}"
                    )
            text = definition.emit(OutputFormat(fmt), signing_key)
            if output:
                with open(output, 'w') as f:
                    f.write(text)
                self.logger.info(f"Wrote manifest to {output}")
        except (ManifestError, ValueError, OSError) as e:
            self.logger.debug("Generation failed", exc_info=True)
            return self._report_failure(e)

        if not output:
            click.echo(text, nl=False)
        return 0

    def validate(self, source: str) -> int:
        """Report every violation without emitting anything"""
        try:
            definition = self.load(source)
            report = definition.validate()
        except (ManifestError, ValueError, OSError) as e:
            return self._report_failure(e)

        if not report.ok:
            return self._report_failure(ValidationFailed(report.errors))

        click.echo(f"OK: {len(report.pipeline_order)} pipeline(s), no violations", err=True)
        return 0

    def graph(self, source: str) -> int:
        """Print pipelines in dependency order with their step order"""
        try:
            definition = self.load(source)
            report = definition.validate()
            report.raise_for_errors()
        except (ManifestError, ValueError, OSError) as e:
            return self._report_failure(e)

        pipelines = {pipeline.name: pipeline for pipeline in definition.assembled()}
        for name in report.pipeline_order:
            pipeline = pipelines[name]
            depends = f" <- {', '.join(pipeline.depends_on)}" if pipeline.depends_on else ""
            click.echo(f"{name}{depends}")
            for step_name in report.step_order[name]:
                step = pipeline.get_step(step_name)
                step_depends = f" <- {', '.join(step.depends_on)}" if step.depends_on else ""
                click.echo(f"  {step_name}{step_depends}")
        return 0

    def evaluate(self, source: str, event: Event) -> int:
        """List the pipelines and steps that would fire for ``event``"""
        try:
            definition = self.load(source)
        except (ManifestError, ValueError, OSError) as e:
            return self._report_failure(e)

        firing = TriggerEvaluator().firing(definition.assembled(), event)
        if not firing:
            click.echo("No pipelines match this event")
            return 0
        for pipeline, steps in firing:
            click.echo(pipeline.name)
            for step in steps:
                click.echo(f"  {step.name}")
        return 0


@click.group()
@click.option('--settings', 'settings_path', default=None, help='Path to generator settings YAML')
@click.option('--log-level', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              help='Set the logging level')
@click.pass_context
def cli(ctx, settings_path, log_level):
    """cigraph - compose CI pipelines and emit a validated manifest"""
    # stdout carries the manifest, logs go to stderr
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    try:
        settings = load_settings(settings_path)
    except (ValueError, OSError) as e:
        raise click.ClickException(f"Could not load settings: {e}")

    ctx.ensure_object(dict)
    ctx.obj['settings'] = settings
    ctx.obj['cli'] = GenerateCLI(settings)


@cli.command()
@click.argument('source', type=click.Path(dir_okay=False, allow_dash=True))
@click.option('--format', 'fmt', default=OutputFormat.YAML.value,
              type=click.Choice([f.value for f in OutputFormat]), help='Output format')
@click.option('--output', '-o', default=None, help='Write the manifest to this file instead of stdout')
@click.option('--sign/--no-sign', default=False, help='Append a signature document')
@click.pass_context
def generate(ctx, source, fmt, output, sign):
    """Generate the manifest from SOURCE"""
    ctx.exit(ctx.obj['cli'].generate(source, fmt, output, sign))


@cli.command()
@click.argument('source', type=click.Path(dir_okay=False, allow_dash=True))
@click.pass_context
def validate(ctx, source):
    """Validate SOURCE and report every violation"""
    ctx.exit(ctx.obj['cli'].validate(source))


@cli.command()
@click.argument('source', type=click.Path(dir_okay=False, allow_dash=True))
@click.pass_context
def graph(ctx, source):
    """Print pipelines and steps in dependency order"""
    ctx.exit(ctx.obj['cli'].graph(source))


@cli.command()
@click.argument('source', type=click.Path(dir_okay=False, allow_dash=True))
@click.option('--event', 'event_kind', required=True, help=f'Event kind, e.g. {", ".join(e.value for e in EventKind)}')
@click.option('--branch', default=None, help='Branch the event refers to')
@click.option('--ref', default=None, help='Git ref, e.g. refs/tags/v1.4.0')
@click.option('--cron', default=None, help='Schedule name for cron events')
@click.option('--target', 'targets', multiple=True, help='Promotion target label (repeatable)')
@click.option('--status', default='success', type=click.Choice(['success', 'failure']), help='Build status')
@click.pass_context
def evaluate(ctx, source, event_kind, branch, ref, cron, targets: Tuple[str, ...], status):
    """Show which pipelines in SOURCE would fire for an event"""
    event = Event(kind=event_kind, branch=branch, ref=ref, cron=cron, targets=tuple(targets), status=status)
    ctx.exit(ctx.obj['cli'].evaluate(source, event))


if __name__ == "__main__":
    cli()
