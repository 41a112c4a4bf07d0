#!/usr/bin/env python3
"""
FSHDscope CLI
=============

Single-cell RNA-seq analysis of FSHD vs Control samples:
- Count matrix loading with Ensembl -> gene symbol mapping
- Sample merging on the union of genes
- QC, normalization, Harmony batch correction, Leiden clustering
- Differential expression and Enrichr pathway enrichment
- Cell type annotation (CellTypist)

Three main commands:
1. sample-information: Process sample CSV and create sample dictionary pickle
2. create-config: Generate config YAML for the pipeline
3. run-config: Execute the pipeline
"""

import click

from fshdscope import __version__
from fshdscope.sample_information import sample_information
from fshdscope.create_config import create_config
from fshdscope.run_config import run_config


@click.group()
@click.version_option(version=__version__, prog_name='FSHDscope')
def main():
    """
    FSHDscope: FSHD vs Control single-cell analysis pipeline

    \b
    Typical workflow:
    1. FSHDscope sample-information --input samples.csv --output samples.pkl
    2. FSHDscope create-config --output-dir ./results --sample-pickle samples.pkl
    3. FSHDscope run-config ./results/config.yaml

    \b
    Offline gene symbols from a two-column table:
    FSHDscope create-config \\
        --output-dir ./results \\
        --sample-pickle samples.pkl \\
        --gene-source table --symbol-table ensembl_to_symbol.tsv
    """
    pass


# Register subcommands
main.add_command(sample_information)
main.add_command(create_config)
main.add_command(run_config)


if __name__ == '__main__':
    main()
