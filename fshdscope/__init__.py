"""
FSHDscope
=========

Single-cell RNA-seq comparison of FSHD and control samples.

Commands:
- sample-information: Process sample CSV and create sample dictionary pickle
- create-config: Generate config YAML for the pipeline
- run-config: Execute the analysis pipeline
"""

__version__ = '0.1.0'
