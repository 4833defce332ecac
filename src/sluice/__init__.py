"""
sluice - Experiment and feature flag decisions.

Deterministic bucketing, audience targeting, and rollouts over a datafile.
"""

from sluice.decision_service import DecisionService
from sluice.project_config import InvalidDatafileError, ProjectConfig

__version__ = "0.1.0"
__all__ = ["DecisionService", "InvalidDatafileError", "ProjectConfig", "__version__"]
