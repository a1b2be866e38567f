"""
IBGE server access.

Thin HTTP client for the public microdata mirror plus a provider that turns
a (year, quarter) request into a labelled table.
"""
