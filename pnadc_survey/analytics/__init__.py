"""
Table transforms, design-based estimators, inequality measures and
synthetic samples.
"""
