from setuptools import setup, find_packages

setup(
    name='FSHDscope',
    version='0.1.0',
    description='Single-cell RNA-seq analysis of FSHD vs Control samples',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    entry_points={
        'console_scripts': [
            'FSHDscope=fshdscope.cli:main',
        ],
    },
    install_requires=[
        'click',
        'pyyaml',
        'pandas',
        'numpy',
        'scipy',
        'anndata',
        'scanpy[leiden]>=1.10',
        'harmonypy<0.1',  # scanpy's harmony_integrate transposes Z_corr; newer harmonypy already returns cells x PCs
        'gseapy',
        'celltypist',
        'mygene',
        'matplotlib',
        'seaborn',
    ],
    extras_require={
        'test': ['pytest'],
    },
    python_requires='>=3.9',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
    ],
)
