"""
Cliente AI para Coding Agent Planner
Integración con un endpoint chat-completions compatible con OpenAI (Groq por
defecto) para generar planes y ejecutar pasos, con clasificación de errores
HTTP y reintentos con backoff exponencial.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import requests

from ..config.settings import GroqConfig, get_groq_config, settings
from ..exceptions import (
    ConfigurationError,
    NetworkError,
    PlannerException,
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
    ValidationError,
)
from .models import PatchPayload, Plan, Step
from .parsers import parse_plan_response, parse_step_execution_response
from .prompts import (
    generate_plan_prompt,
    generate_step_execution_prompt,
    sanitize_input,
    validate_prompt_context,
    validate_step_execution_context,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60


def _retry_after_from(response: requests.Response) -> float:
    """Retry hint in seconds, from the header or the JSON body."""
    value = response.headers.get("retry-after")
    if value is None:
        try:
            value = response.json().get("retryAfter")
        except (ValueError, AttributeError):
            value = None
    try:
        return float(value) if value is not None else DEFAULT_RETRY_AFTER
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER


def classify_http_error(response: requests.Response) -> PlannerException:
    """Map an HTTP error status onto the planner error taxonomy."""
    code = response.status_code
    try:
        detail = response.json().get("error")
    except (ValueError, AttributeError):
        detail = None
    if isinstance(detail, dict):
        detail = detail.get("message")

    if code == 400:
        return ValidationError(detail or "Invalid request data")
    if code in (401, 403):
        return ConfigurationError(detail or "Invalid API key configuration")
    if code == 404:
        return ConfigurationError(detail or "Endpoint or model not found")
    if code == 429:
        retry_after = _retry_after_from(response)
        return RateLimitError(
            f"Rate limit exceeded. Please try again in {int(retry_after)} seconds.",
            retry_after=retry_after,
        )
    if code == 500:
        return ServiceError(detail or "Server error", status_code=code)
    if code in (502, 503, 504):
        return ServiceError(detail or "AI service error", status_code=code)
    return ServiceError(f"HTTP {code}: {detail or 'Unknown error'}", status_code=code)


def compute_backoff(
    attempt: int,
    base: float,
    cap: float,
    error: Optional[PlannerException] = None,
) -> float:
    """Delay before retry number `attempt` (0-based); honors rate-limit hints."""
    if isinstance(error, RateLimitError) and error.retry_after:
        return min(cap, float(error.retry_after))
    return min(cap, base * (2 ** attempt))


def with_retries(
    func: Callable[[], Any],
    max_retries: int,
    base: float,
    cap: float,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Call func, retrying transient planner errors with exponential backoff."""
    attempt = 0
    while True:
        try:
            return func()
        except PlannerException as e:
            if not e.retryable or attempt >= max_retries:
                raise
            delay = compute_backoff(attempt, base, cap, e)
            logger.warning(
                f"{type(e).__name__}: {e}. Reintento {attempt + 1}/{max_retries} en {delay:.1f}s"
            )
            sleep(delay)
            attempt += 1


class AIClient(ABC):
    """Clase base abstracta para clientes AI"""

    def __init__(self, config: GroqConfig):
        self.config = config

    @abstractmethod
    def generate_response(self, prompt: str, **kwargs) -> str:
        """Genera respuesta del modelo AI"""
        pass


class GroqClient(AIClient):
    """Cliente para un endpoint chat-completions (Groq u otro compatible)"""

    def generate_response(self, prompt: str, **kwargs) -> str:
        """Envía el prompt y devuelve el contenido del primer mensaje"""
        debug = bool(kwargs.get("debug", False))
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        data = {
            "model": kwargs.get("model") or self.config.model,
            "messages": kwargs.get("messages") or [{"role": "user", "content": prompt}],
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
        }

        if debug:
            logger.debug(f"POST {self.config.base_url}")
            logger.debug(f"Payload: {json.dumps(data, ensure_ascii=False)}")

        try:
            response = requests.post(
                self.config.base_url, headers=headers, json=data, timeout=self.config.timeout
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(f"Timeout tras {self.config.timeout}s: {e}")
        except requests.RequestException as e:
            raise NetworkError(f"Error de red con el servicio AI: {e}")

        if not response.ok:
            error = classify_http_error(response)
            logger.error(f"Error del servicio AI ({response.status_code}): {error}")
            raise error

        try:
            result = response.json()
            content = result["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise ServiceError("Invalid response from AI service", status_code=response.status_code)
        if not content:
            raise ServiceError("Invalid response from AI service", status_code=response.status_code)

        if debug:
            logger.debug(f"Response: {content}")
        return content


class PlannerOrchestrator:
    """Orquestador: prompts, llamada al servicio con reintentos y normalización"""

    def __init__(self, client: Optional[AIClient] = None, sleep: Callable[[float], None] = time.sleep):
        self._client = client
        self._sleep = sleep

    @property
    def client(self) -> AIClient:
        # La configuración se resuelve al primer uso para no exigir API key al importar
        if self._client is None:
            self._client = GroqClient(get_groq_config())
        return self._client

    def _call(self, prompt: str, **kwargs) -> str:
        return with_retries(
            lambda: self.client.generate_response(prompt, **kwargs),
            max_retries=settings.max_retries,
            base=settings.backoff_base,
            cap=settings.backoff_cap,
            sleep=self._sleep,
        )

    def generate_plan(self, intent: str, code_context: Optional[str] = None, **kwargs) -> Plan:
        """Genera un plan de pasos a partir de la intención y el contexto"""
        if not intent or not intent.strip():
            raise ValidationError("Intent is required")
        clean_intent = sanitize_input(intent)
        clean_context = sanitize_input(code_context) if code_context else ""
        # El contexto es opcional para planes
        validate_prompt_context(clean_context, clean_intent, require_context=False)

        prompt = generate_plan_prompt(clean_context, clean_intent)
        response = self._call(prompt, **kwargs)
        plan = parse_plan_response(response)
        logger.info(f"Plan generado con {len(plan.steps)} pasos")
        return plan

    def execute_step(self, step: Step, code_context: str, **kwargs) -> PatchPayload:
        """Ejecuta un paso y devuelve el parche normalizado"""
        if step is None:
            raise ValidationError("Step is required")
        title = sanitize_input(step.title or "")
        description = sanitize_input(step.description or "")
        context = sanitize_input(code_context or "")
        validate_step_execution_context(title, description, context, step.input_files)

        prompt = generate_step_execution_prompt(title, description, context, step.input_files)
        response = self._call(prompt, **kwargs)
        payload = parse_step_execution_response(response)
        # El id del paso lo decide el llamador, nunca el modelo
        payload.step_id = step.id
        return payload
