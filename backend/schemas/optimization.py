# optimization.py  (shape of the generator's optimization answer)
from typing import Any, Dict

from jsonschema import ValidationError, validate

OPTIMIZATION_SCHEMA = {
    "type": "object",
    "required": ["bpmnXml"],
    "properties": {
        "bpmnXml": {"type": "string", "minLength": 1},
        "changes": {
            "type": "array",
            "items": {"type": "string"},
        },
        "summary": {"type": "string"},
    },
    "additionalProperties": True,
}


def validate_optimization_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Raise ValueError when the generator's optimization JSON has the wrong shape."""
    try:
        validate(instance=payload, schema=OPTIMIZATION_SCHEMA)
    except ValidationError as e:
        where = "/".join([str(p) for p in e.path]) or "<root>"
        raise ValueError(f"Optimization payload invalid at {where}: {e.message}")
    return payload
