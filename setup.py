r"""
Shim setup.py
"""

from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name = 'omicnet',
    version = '0.1.0',
    description = 'omicnet: trait-associated gene co-expression networks from bulk expression data',
    license = 'GNU License',
    install_requires = ['numpy','pandas','scipy','statsmodels','scikit-learn','matplotlib','seaborn',
                        'networkx','requests','pydeseq2','dynamicTreeCut','GEOparse','mygene',
                        'adjustText','packaging',],
    extras_require = {
        'tests': ['pytest'],
    },
    packages = find_packages(include=["omicnet", "omicnet.*"]),
    entry_points = {
        'console_scripts': ['omicnet=omicnet.cli:main'],
    },
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires='>=3.8',
)
