"""Schema validation for generated workflow documents.

Checks a candidate n8n-style workflow against structural rules before it is
accepted and persisted. Every violated rule contributes its own message;
validation never stops at the first error so the model can be told about
all of its mistakes at once.
"""

import json
from numbers import Real
from typing import Any, List

from pydantic import BaseModel

from core.constants import MAX_WORKFLOW_NODES, MIN_WORKFLOW_NODES


class WorkflowValidationResult(BaseModel):
    """Outcome of validating a workflow document."""
    valid: bool
    errors: List[str] = []


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _valid_position(position: Any) -> bool:
    return (
        isinstance(position, list)
        and len(position) == 2
        and all(_is_number(coord) for coord in position)
    )


def _id_key(value: Any) -> str:
    # ids may be unhashable (lists, objects) in malformed model output
    return json.dumps(value, sort_keys=True, default=str)


def validate_workflow(document: Any) -> WorkflowValidationResult:
    """Validate a workflow document.

    Connection endpoints are not checked against the node ids: dangling
    references in ``connections`` are accepted.

    Args:
        document: Parsed JSON value produced by the model

    Returns:
        WorkflowValidationResult with ``valid`` set when no rule was violated
    """
    errors: List[str] = []
    is_object = isinstance(document, dict)

    nodes = document.get("nodes") if is_object else None
    connections = document.get("connections") if is_object else None

    if not isinstance(nodes, list):
        errors.append('Workflow must have a "nodes" array')

    if not isinstance(connections, dict):
        errors.append('Workflow must have a "connections" object')

    if isinstance(nodes, list):
        if not MIN_WORKFLOW_NODES <= len(nodes) <= MAX_WORKFLOW_NODES:
            errors.append(
                f"Workflow must have between {MIN_WORKFLOW_NODES} "
                f"and {MAX_WORKFLOW_NODES} nodes"
            )

        for index, node in enumerate(nodes):
            if not isinstance(node, dict):
                node = {}
            for field in ("id", "name", "type"):
                if not node.get(field):
                    errors.append(f'Node at index {index} is missing "{field}"')
            if not _valid_position(node.get("position")):
                errors.append(f'Node at index {index} has invalid "position"')

        ids = [
            _id_key(node.get("id") if isinstance(node, dict) else None)
            for node in nodes
        ]
        if len(ids) != len(set(ids)):
            errors.append("Workflow has duplicate node IDs")

    return WorkflowValidationResult(valid=not errors, errors=errors)
