#!/usr/bin/env python3
"""
sample-information command
==========================

Process a CSV file describing the per-sample count matrices and create a
Python dictionary pickle that can be used by create-config.

Expected CSV columns:
- sample_name: Unique sample name; names containing 'FSHD' are FSHD
  samples, all others are controls
- counts_path: Path to the tab-separated count matrix (.tsv or .tsv.gz)

Additional optional columns (donor, passage, notes, ...) will be preserved
in the metadata.
"""

import click
import os
import sys
import pickle
import pandas as pd

from fshdscope.loader import derive_condition


REQUIRED_COLUMNS = ['sample_name', 'counts_path']


def validate_count_paths(df, check_existence=True):
    """
    Validate that count matrix paths are present and exist.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame with sample_name and counts_path columns
    check_existence : bool
        Whether to check if files actually exist

    Returns
    -------
    tuple
        (is_valid, error_messages)
    """
    errors = []

    for idx, row in df.iterrows():
        sample_name = row['sample_name']
        path = row['counts_path']

        if pd.isna(path) or not str(path).strip():
            errors.append(f"Sample {sample_name}: No counts_path provided")
            continue

        if check_existence and not os.path.exists(str(path).strip()):
            errors.append(f"Sample {sample_name}: count matrix not found: {path}")

    return len(errors) == 0, errors


def create_sample_dict(df):
    """
    Convert DataFrame to the nested dictionary used by create-config.

    {
        'FSHD1_1': {
            'path': '/data/FSHD1_1.tsv.gz',
            'condition': 'FSHD',
            ... additional metadata
        }
    }

    Parameters
    ----------
    df : pd.DataFrame
        Validated sample information DataFrame

    Returns
    -------
    dict
        Sample dictionary keyed by sample name, in CSV order
    """
    sample_dict = {}

    for idx, row in df.iterrows():
        sample_name = str(row['sample_name'])

        sample_entry = {
            'path': str(row['counts_path']).strip(),
            'condition': derive_condition(sample_name),
        }

        # Add any additional columns as metadata
        for col in df.columns:
            if col not in REQUIRED_COLUMNS and pd.notna(row[col]):
                sample_entry[col] = row[col]

        sample_dict[sample_name] = sample_entry

    return sample_dict


@click.command('sample-information')
@click.option(
    '--input', '-i', 'input_csv',
    required=True,
    type=click.Path(exists=True),
    help='Path to CSV file containing sample information'
)
@click.option(
    '--output', '-o', 'output_pkl',
    required=True,
    type=click.Path(),
    help='Path for output pickle file (sample dictionary)'
)
@click.option(
    '--skip-validation', '-s',
    is_flag=True,
    default=False,
    help='Skip validation of count matrix existence (useful for cluster environments)'
)
@click.option(
    '--verbose', '-v',
    is_flag=True,
    default=False,
    help='Print verbose output'
)
def sample_information(input_csv, output_pkl, skip_validation, verbose):
    """
    Process sample CSV and create sample dictionary pickle.

    \b
    Required CSV columns:
      - sample_name: Unique sample name (FSHD samples contain 'FSHD')
      - counts_path: Path to the count matrix (tab-separated, optionally gzipped)

    \b
    Example CSV format:
      sample_name,counts_path,donor
      FSHD1_1,/data/FSHD1_1.tsv.gz,P01
      Control_1,/data/Control_1.tsv.gz,C01

    \b
    Usage examples:

      FSHDscope sample-information -i samples.csv -o samples.pkl
      FSHDscope sample-information -i samples.csv -o samples.pkl --skip-validation
    """

    click.echo(f"\n{'='*60}")
    click.echo("FSHDscope: sample-information")
    click.echo(f"{'='*60}\n")

    click.echo(f"Reading sample information from: {input_csv}")
    try:
        df = pd.read_csv(input_csv)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        click.echo(f"ERROR: Failed to read CSV file: {e}", err=True)
        sys.exit(1)

    missing_cols = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_cols:
        click.echo(f"ERROR: Missing required columns: {missing_cols}", err=True)
        click.echo(f"Found columns: {list(df.columns)}", err=True)
        click.echo("\nExpected CSV format:", err=True)
        click.echo("  sample_name,counts_path[,optional columns...]", err=True)
        sys.exit(1)

    if df['sample_name'].duplicated().any():
        dups = df[df['sample_name'].duplicated()]['sample_name'].tolist()
        click.echo(f"ERROR: Duplicate sample names found: {dups}", err=True)
        sys.exit(1)

    click.echo(f"Found {len(df)} samples")

    if verbose:
        click.echo("\nSamples:")
        for name in df['sample_name']:
            click.echo(f"  - {name} ({derive_condition(str(name))})")
        click.echo(f"\nColumns found: {list(df.columns)}")

    if not skip_validation:
        click.echo("\nValidating count matrix paths...")
        is_valid, errors = validate_count_paths(df, check_existence=True)
        if not is_valid:
            click.echo("ERROR: Count matrix validation failed:", err=True)
            for err in errors[:10]:
                click.echo(f"  - {err}", err=True)
            if len(errors) > 10:
                click.echo(f"  ... and {len(errors) - 10} more errors", err=True)
            click.echo("\nUse --skip-validation to skip file existence checks", err=True)
            sys.exit(1)
        click.echo("  All count matrix paths validated successfully")
    else:
        click.echo("\nSkipping count matrix validation (--skip-validation)")
        is_valid, errors = validate_count_paths(df, check_existence=False)
        if not is_valid:
            click.echo("ERROR: Count matrix path validation failed:", err=True)
            for err in errors:
                click.echo(f"  - {err}", err=True)
            sys.exit(1)

    click.echo("\nCreating sample dictionary...")
    sample_dict = create_sample_dict(df)

    conditions = pd.Series([s['condition'] for s in sample_dict.values()]).value_counts()
    for condition, n in conditions.items():
        click.echo(f"  {condition}: {n} samples")

    output_dir = os.path.dirname(output_pkl)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir, exist_ok=True)

    click.echo(f"Saving to: {output_pkl}")
    with open(output_pkl, 'wb') as f:
        pickle.dump(sample_dict, f)

    click.echo(f"\n{'='*60}")
    click.echo("SUCCESS: Sample information processed")
    click.echo(f"{'='*60}")
    click.echo(f"\nOutput: {output_pkl}")
    click.echo(f"Samples: {len(df)}")

    click.echo("\n" + "="*60)
    click.echo("Next step: Create pipeline configuration")
    click.echo("="*60)
    click.echo(f"\n  FSHDscope create-config \\")
    click.echo(f"    --output-dir ./results \\")
    click.echo(f"    --sample-pickle {output_pkl}")
    click.echo("")


if __name__ == '__main__':
    sample_information()
