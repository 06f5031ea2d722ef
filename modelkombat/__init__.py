"""
Model Kombat configuration core.

Credential handling, OpenRouter catalog synchronization, refinement-round model
rotation and rating aggregation for the Model Kombat multi-model workflow.
"""

__version__ = "0.1.0"
