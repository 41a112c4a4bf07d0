#!/usr/bin/env python3
"""
run-config command
==================

Execute the FSHDscope pipeline from a config YAML created by create-config.
"""

import os
import sys
import logging

import click

from fshdscope.config import load_config, validate_config
from fshdscope.errors import FSHDscopeError

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(log_dir=None, verbose=False):
    """
    Console logging for the whole process plus a pipeline.log file
    under log_dir for the fshdscope loggers.

    Returns
    -------
    str or None
        Path of the log file
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)

    package_logger = logging.getLogger('fshdscope')
    package_logger.setLevel(level)

    if not log_dir:
        return None

    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'pipeline.log')
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(file_handler)
    return log_file


@click.command('run-config')
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--dry-run', '-n', is_flag=True, default=False,
              help='Load and validate the config without running the pipeline')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Debug logging')
def run_config(config_file, dry_run, verbose):
    """
    Run the pipeline described by CONFIG_FILE.

    \b
    Usage examples:

      FSHDscope run-config ./results/config.yaml
      FSHDscope run-config ./results/config.yaml --dry-run
    """
    try:
        config = load_config(config_file)
        validate_config(config)
    except (FSHDscopeError, ValueError) as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    click.echo(f"Config: {config_file}")
    click.echo(f"Samples: {len(config['samples'])}")
    click.echo(f"Output: {config['output_dir']}")

    if dry_run:
        click.echo("\nDry run: configuration is valid, nothing executed")
        return

    log_file = setup_logging(config['log_dir'], verbose=verbose)
    if log_file:
        click.echo(f"Log: {log_file}")

    # heavy imports only when actually running
    from fshdscope.pipeline import run_pipeline

    try:
        run_pipeline(config)
    except FSHDscopeError as e:
        logger.error(f"Pipeline failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    run_config()
