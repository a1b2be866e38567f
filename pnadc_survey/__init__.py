"""
pnadc_survey – survey-weighted analysis of the PNAD Contínua microdata.

A tutorial-style toolkit: load the quarterly microdata (online or offline),
manipulate it, build the complex sample design, estimate totals, means,
quantiles and the Gini index with design-based standard errors, and chart
the results.
"""

__version__ = "0.1.0"
