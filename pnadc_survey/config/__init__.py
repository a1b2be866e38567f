"""
Configuration loading and validation.

Provides strongly typed settings objects for the IBGE server, local folders
and estimation options, with upfront validation.
"""
