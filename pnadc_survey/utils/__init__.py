"""
Generic numerical helpers shared across modules.

Includes Taylor-linearization variance, weighted quantiles and safe ratios.
"""
