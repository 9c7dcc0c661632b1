"""
Validation

Rule-based scoring of generated artifacts.
"""

from graphex_kg.validation.output_validator import OutputValidator

__all__ = ["OutputValidator"]
