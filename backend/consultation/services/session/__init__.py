"""
Session management module.

Provides the GatewayOrchestrator for real-time conversation connections.
"""
from .orchestrator import GatewayOrchestrator

# Singleton instance bound to the process-wide connection registry
gateway_orchestrator = GatewayOrchestrator()

__all__ = ["GatewayOrchestrator", "gateway_orchestrator"]
