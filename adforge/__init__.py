"""
AdForge
=======

Guarded, model-driven operation of advertising accounts: a tool-calling
runtime, a guardrail policy engine, tiered memory and a role-agent
orchestrator.
"""

__version__ = "0.1.0"
