"""
================================================================================
FILE: pipelines_host/pipeline/validator.py
================================================================================

PURPOSE:
    Probe a freshly loaded unit for its calling contract and cache the
    result as PipelineCapabilities. Also type-checks valve updates
    against a valve spec.

ENTRY POINTS PROBED:
    pipe(body, user, model)      mandatory (a shorter positional prefix is fine)
    inlet(body, user, model)     optional
    outlet(body, user, model)    optional
    valves                       optional: method, dict, or pydantic model
    valves_spec()                optional; derived from a pydantic Valves
                                 model's JSON schema when absent
    update_valves(values)        optional

KEY FACTS:
    - Probe only: attribute lookups and signature inspection, no calls
      into pipeline entry points
    - Anything raised while probing (a property getter, a broken schema)
      becomes ProbeFailure
"""

import inspect
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from pipelines_host.config.constants import MAX_CALL_ARITY, REQUIRED_ENTRY_POINT
from pipelines_host.core.exceptions import PipelineValidationError, ValidationErrorKind
from pipelines_host.pipeline.schemas import EntryPoint, LoadedUnit, PipelineCapabilities

logger = logging.getLogger(__name__)

_POSITIONAL_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)

# JSON schema type -> accepted Python types
_JSON_TYPES = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
    "null": (type(None),),
}


def positional_arity(func: Callable[..., Any], limit: int = MAX_CALL_ARITY) -> int:
    """How many of (body, user, model) func accepts positionally."""
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return limit

    count = 0
    for param in signature.parameters.values():
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            return limit
        if param.kind in _POSITIONAL_KINDS:
            count += 1
    return min(count, limit)


class InterfaceValidator:
    """Checks that a unit honours the pipeline contract."""

    def validate(self, loaded: LoadedUnit) -> PipelineCapabilities:
        """
        Probe loaded.unit.

        Raises:
            PipelineValidationError: MissingRequiredEntryPoint | ProbeFailure
        """
        unit = loaded.unit
        identifier = loaded.identifier

        try:
            pipe = self._entry_point(unit, REQUIRED_ENTRY_POINT)
            if pipe is None:
                raise PipelineValidationError(
                    ValidationErrorKind.MISSING_REQUIRED_ENTRY_POINT,
                    f"'{identifier}' does not define a callable '{REQUIRED_ENTRY_POINT}'",
                )

            inlet = self._entry_point(unit, "inlet")
            outlet = self._entry_point(unit, "outlet")
            valves_spec = self._entry_point(unit, "valves_spec")
            update_valves = self._entry_point(unit, "update_valves")

            valves_attr = getattr(unit, "valves", None)
            valves = None
            valves_value = None
            if callable(valves_attr) and not isinstance(valves_attr, BaseModel):
                valves = EntryPoint("valves", valves_attr, positional_arity(valves_attr))
            elif valves_attr is not None:
                valves_value = valves_attr

            valve_spec = None
            if valves_spec is None:
                valve_spec = self._derive_valve_spec(unit, valves_value)

        except PipelineValidationError:
            raise
        except Exception as e:
            raise PipelineValidationError(
                ValidationErrorKind.PROBE_FAILURE,
                f"'{identifier}': {type(e).__name__}: {e}",
            )

        capabilities = PipelineCapabilities(
            pipe=pipe,
            inlet=inlet,
            outlet=outlet,
            valves=valves,
            valves_spec=valves_spec,
            update_valves=update_valves,
            valves_value=valves_value,
            valve_spec=valve_spec,
        )
        logger.debug(f"Validated '{identifier}': {capabilities.summary()}")
        return capabilities

    @staticmethod
    def _entry_point(unit: Any, name: str) -> Optional[EntryPoint]:
        func = getattr(unit, name, None)
        if func is None or not callable(func):
            return None
        return EntryPoint(name=name, func=func, arity=positional_arity(func))

    @staticmethod
    def _derive_valve_spec(unit: Any, valves_value: Any) -> Optional[Dict[str, Any]]:
        if isinstance(valves_value, BaseModel):
            return type(valves_value).model_json_schema()
        model_cls = getattr(unit, "Valves", None)
        if inspect.isclass(model_cls) and issubclass(model_cls, BaseModel):
            return model_cls.model_json_schema()
        return None


# ================================================================================
# VALVE VALUE CHECKS
# ================================================================================

def _field_types(field_spec: Any) -> Optional[list]:
    """Declared JSON types of one field spec, or None when unconstrained."""
    if isinstance(field_spec, str):
        return [field_spec]
    if not isinstance(field_spec, dict):
        return None

    declared = field_spec.get("type")
    if isinstance(declared, str):
        return [declared]
    if isinstance(declared, list):
        return list(declared)

    # pydantic renders Optional[X] as anyOf: [{type: X}, {type: null}]
    alternatives = field_spec.get("anyOf") or field_spec.get("oneOf")
    if isinstance(alternatives, list):
        types = []
        for alt in alternatives:
            alt_types = _field_types(alt)
            if alt_types is None:
                return None
            types.extend(alt_types)
        return types
    return None


def _matches(value: Any, json_type: str) -> bool:
    accepted = _JSON_TYPES.get(json_type)
    if accepted is None:
        return True
    if isinstance(value, bool) and json_type in ("integer", "number"):
        return False
    return isinstance(value, accepted)


def check_valve_values(spec: Optional[Dict[str, Any]], values: Dict[str, Any]) -> None:
    """
    Type-check supplied valve values against a valve spec.

    spec may be a JSON schema ({"properties": {...}}) or a flat mapping of
    key → field spec / type name. Keys not declared by a non-empty spec are
    rejected.

    Raises:
        PipelineValidationError: InvalidValveValues
    """
    if not isinstance(values, dict):
        raise PipelineValidationError(
            ValidationErrorKind.INVALID_VALVE_VALUES,
            f"valve values must be an object, got {type(values).__name__}",
        )
    if not spec:
        return

    fields = spec.get("properties", spec) if isinstance(spec, dict) else {}
    if not isinstance(fields, dict) or not fields:
        return

    problems = []
    for key, value in values.items():
        if key not in fields:
            problems.append(f"unknown valve '{key}'")
            continue
        types = _field_types(fields[key])
        if types and not any(_matches(value, t) for t in types):
            problems.append(f"'{key}' expects {'|'.join(types)}, got {type(value).__name__}")

    if problems:
        raise PipelineValidationError(ValidationErrorKind.INVALID_VALVE_VALUES, "; ".join(problems))
