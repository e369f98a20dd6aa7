"""
Declarative environment variables.

An ``EnvVarSpec`` names a variable, its default, how to parse the raw string
and the pydantic field type the parsed value must satisfy. ``validate`` checks
a list of specs at startup; ``parse`` reads one.
"""

import os
from typing import Any, Callable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError, create_model

from utils import log

logger = log.get_logger(__name__)


class EnvVarSpec(BaseModel):
    id: str
    default: Optional[str] = None
    parse: Callable[[str], Any] = str
    type: Tuple[Any, Any] = (str, ...)
    is_optional: bool = False
    is_secret: bool = False


def raw(spec: EnvVarSpec) -> Optional[str]:
    value = os.environ.get(spec.id)
    if value is None or value == "":
        return spec.default
    return value


def parse(spec: EnvVarSpec) -> Any:
    value = raw(spec)
    if value is None:
        return None
    return spec.parse(value)


def _describe(spec: EnvVarSpec, value: Optional[str]) -> str:
    if value is None:
        return "<unset>"
    return "********" if spec.is_secret else value


def validate(specs: List[EnvVarSpec]) -> bool:
    """Parse every spec and type-check the results. Logs each problem found."""
    ok = True
    for spec in specs:
        value = raw(spec)
        if value is None:
            if not spec.is_optional:
                logger.error(f"Missing required environment variable {spec.id}")
                ok = False
            continue

        try:
            parsed = spec.parse(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot parse {spec.id}={_describe(spec, value)}: {e}")
            ok = False
            continue

        model = create_model(f"Env_{spec.id}", value=spec.type)
        try:
            model(value=parsed)
        except ValidationError as e:
            logger.error(f"Invalid {spec.id}={_describe(spec, value)}: {e.errors()[0]['msg']}")
            ok = False
            continue

        logger.debug(f"{spec.id}={_describe(spec, value)}")
    return ok
