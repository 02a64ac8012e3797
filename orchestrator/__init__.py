"""
Orchestrator: controller for the LLM worker fleet.
"""
