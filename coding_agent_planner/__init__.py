"""
Coding Agent Planner: plans, patches and file reconstruction for AI-assisted code changes.
"""

__version__ = "0.1.0"
