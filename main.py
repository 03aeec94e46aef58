#!/usr/bin/env python3
"""
Coding Agent Planner - API
Servidor FastAPI: planes, ejecución de pasos, reconstrucción y exportación de parches
"""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from coding_agent_planner import __version__
from coding_agent_planner.core.ai_client import PlannerOrchestrator
from coding_agent_planner.core.export import (
    ExportOptions,
    generate_combined_patch,
    generate_patch_filename,
)
from coding_agent_planner.core.models import AcceptedStep, PatchPayload, Plan, Step
from coding_agent_planner.core.reconstruction import reconstruct_files
from coding_agent_planner.exceptions import (
    ConfigurationError,
    ParseError,
    PlannerAPIException,
    PlannerException,
    RateLimitError,
    RateLimitExceededException,
    ValidationError,
)
from coding_agent_planner.utils.diff_parser import diff_stats, parse_diff

# Configurar logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Coding Agent Planner API",
    description="Planes paso a paso y parches de código generados por IA",
    version=__version__,
)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Modelos de datos para las solicitudes
class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GeneratePlanRequest(CamelModel):
    intent: str = ""
    code_context: Optional[str] = Field(None, alias="codeContext")


class ExecuteStepRequest(CamelModel):
    step: Dict[str, Any]
    code_context: str = Field("", alias="codeContext")


class ReconstructRequest(CamelModel):
    code_context: str = Field("", alias="codeContext")
    executions: List[Dict[str, Any]] = Field(default_factory=list)


class AcceptedStepItem(CamelModel):
    step: Dict[str, Any]
    execution: Optional[Dict[str, Any]] = None
    accepted: bool = False


class ExportRequest(CamelModel):
    plan: Dict[str, Any]
    accepted_steps: List[AcceptedStepItem] = Field(default_factory=list, alias="acceptedSteps")
    format: str = "unified_diff"
    include_metadata: bool = Field(True, alias="includeMetadata")
    filename: Optional[str] = None


class ParseDiffRequest(BaseModel):
    diff: str
    format: str = "unified_diff"


# Instancia global del orquestador (reemplazable en tests)
orchestrator = PlannerOrchestrator()


def to_http_error(e: PlannerException) -> PlannerAPIException:
    """Traduce errores del dominio a respuestas HTTP"""
    if isinstance(e, ValidationError):
        return PlannerAPIException(status_code=400, detail={"error": str(e)})
    if isinstance(e, RateLimitError):
        return RateLimitExceededException(retry_after=e.retry_after, detail=str(e))
    if isinstance(e, ConfigurationError):
        return PlannerAPIException(
            status_code=500, detail={"error": "API configuration error", "details": str(e)}
        )
    if isinstance(e, ParseError):
        return PlannerAPIException(
            status_code=502,
            detail={
                "error": "Failed to parse AI response",
                "details": str(e),
                "originalResponse": e.original_response,
            },
        )
    return PlannerAPIException(
        status_code=502, detail={"error": "AI service error", "details": str(e)}
    )


def _step_from(data: Dict[str, Any]) -> Step:
    try:
        return Step.from_dict(data)
    except (KeyError, TypeError) as e:
        raise ValidationError(f"Invalid step: {e}")


@app.get("/health")
async def health_check():
    """Endpoint de verificación de salud"""
    return {"status": "healthy", "version": __version__}


@app.post("/api/generate-plan")
def generate_plan(req: GeneratePlanRequest):
    """Genera un plan a partir de la intención y el contexto"""
    try:
        plan = orchestrator.generate_plan(req.intent, req.code_context)
        return plan.to_dict()
    except PlannerException as e:
        logger.error(f"Error generando plan: {e}")
        raise to_http_error(e)


@app.post("/api/execute-step")
def execute_step(req: ExecuteStepRequest):
    """Ejecuta un paso del plan y devuelve el parche sugerido"""
    try:
        payload = orchestrator.execute_step(_step_from(req.step), req.code_context)
        return payload.to_dict()
    except PlannerException as e:
        logger.error(f"Error ejecutando paso: {e}")
        raise to_http_error(e)


@app.post("/api/reconstruct")
def reconstruct(req: ReconstructRequest):
    """Aplica las ejecuciones aceptadas (en orden) y devuelve los archivos corregidos"""
    try:
        executions = [PatchPayload.from_dict(e) for e in req.executions]
    except ValueError as e:
        raise to_http_error(ValidationError(f"Invalid execution: {e}"))
    files = reconstruct_files(req.code_context, executions)
    return {"files": [f.to_dict() for f in files]}


@app.post("/api/export")
def export(req: ExportRequest):
    """Exporta los pasos aceptados como un único parche"""
    try:
        plan = Plan.from_dict(req.plan)
        options = ExportOptions(
            format=req.format, include_metadata=req.include_metadata, filename=req.filename
        )
        items = [
            AcceptedStep(
                step=_step_from(item.step),
                execution=PatchPayload.from_dict(item.execution) if item.execution else None,
                accepted=item.accepted,
            )
            for item in req.accepted_steps
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise to_http_error(ValidationError(f"Invalid export request: {e}"))
    except PlannerException as e:
        raise to_http_error(e)

    if not any(item.participates for item in items):
        raise to_http_error(ValidationError("No accepted steps to export"))

    content = generate_combined_patch(plan, items, options)
    return {"filename": options.filename or generate_patch_filename(plan), "content": content}


@app.post("/api/parse-diff")
def parse_diff_endpoint(req: ParseDiffRequest):
    """Líneas tipadas con números de línea para mostrar un parche"""
    try:
        lines = parse_diff(req.diff, req.format)
    except ValueError:
        raise to_http_error(ValidationError("Invalid patch format. Must be one of: unified_diff, full_file"))
    return {"lines": [l.to_dict() for l in lines], "stats": diff_stats(lines)}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
