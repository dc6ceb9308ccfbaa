"""Fleetcore: the provisioning core of a multi-cloud fleet orchestrator.

Turns "bootstrap a control instance" or "start machine N satisfying
constraints C" into a running instance on a pluggable cloud backend:

  - Constraint-to-hardware matching against a per-region catalog
  - Image and agent-tools metadata resolution ("first source wins")
  - Scope classification of instance addresses via per-backend tables
  - Durable, create-if-absent bootstrap state in the control bucket
"""

__version__ = "0.1.0"
__description__ = "Provisioning core of a multi-cloud fleet orchestrator"

from fleetcore.core.orchestrator import ProvisioningOrchestrator

__all__ = ["ProvisioningOrchestrator", "__version__"]
