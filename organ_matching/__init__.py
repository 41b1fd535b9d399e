"""
Organ Matching Service

Allocates donated organs to waiting recipients under medical-authority
oversight: donor and recipient registries, compatibility scoring,
best-candidate selection and the confirmation workflow.
"""

__version__ = "0.1.0"
