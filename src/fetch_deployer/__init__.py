"""Fetch deployer.

Webhook-triggered deployment coordinator:
- push payloads normalized from several host formats
- one deployment at a time per environment (non-blocking lock)
- pushes rejected during a deployment are drained by a follow-up cycle
"""

__version__ = "0.1.0"

from fetch_deployer.config import DeployerSettings

__all__ = ["__version__", "DeployerSettings"]
