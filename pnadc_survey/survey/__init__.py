"""
Complex sample design objects.

Wraps a labelled table with weights, strata and primary sampling units, and
defines the estimation error hierarchy.
"""
