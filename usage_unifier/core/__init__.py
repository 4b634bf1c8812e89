"""
Core modules for Usage Unifier.

This package contains the normalization engine and the pure rollups that
consume its output: extraction, detection, pricing, profile resolution,
aggregation and filtering.
"""
