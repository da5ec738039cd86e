"""
cdmcovariates: pluggable covariate construction over the OMOP CDM.

Custom covariate builders register against a settings type, run against a
shared cohort temp table, and have their sparse outputs merged into a
single CovariateData result.
"""

from importlib.metadata import version

__version__ = version("cdmcovariates")

__all__ = ["__version__"]
