"""
Microdata I/O, schema enforcement, and dictionary labelling.

Handles reading the fixed-width PNADC files with their SAS input layout,
applying the variable dictionary, and validating required design columns.
"""
