"""
Módulo core de Coding Agent Planner
Contiene los modelos, el cliente AI y el parseo de respuestas; la
reconstrucción y la exportación viven en sus propios submódulos.
"""

from .ai_client import AIClient, GroqClient, PlannerOrchestrator
from .models import AcceptedStep, PatchFormat, PatchPayload, Plan, ReconstructedFile, Step
from .parsers import normalize_step_execution, parse_plan_response, parse_step_execution_response

__all__ = [
    'AIClient',
    'GroqClient',
    'PlannerOrchestrator',
    'AcceptedStep',
    'PatchFormat',
    'PatchPayload',
    'Plan',
    'ReconstructedFile',
    'Step',
    'normalize_step_execution',
    'parse_plan_response',
    'parse_step_execution_response',
]
