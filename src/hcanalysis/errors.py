# src/hcanalysis/errors.py
from __future__ import annotations


class HCAnalysisError(Exception):
    """Base class for fatal, run-level errors."""


class ConfigurationError(HCAnalysisError):
    """Bad selector rule, invalid TOML/config values, unknown back-end."""


class InputError(HCAnalysisError):
    """No usable input files were supplied."""
