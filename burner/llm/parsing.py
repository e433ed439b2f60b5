"""
Extraction and validation of JSON objects in raw model output.

Models are asked for bare JSON but frequently wrap it in a markdown code
fence or surround it with prose. Both helpers return tagged results so the
caller can hand them straight to the retry runner.
"""

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from burner.llm.retry import AttemptResult, Failure, FailureKind, Ok

M = TypeVar("M", bound=BaseModel)

FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_json_object(response: str) -> AttemptResult[dict[str, Any]]:
    """
    Extract the first JSON object from a model response.

    Args:
        response: Raw response text.

    Returns:
        ``Ok`` with the decoded object, or a schema ``Failure``.
    """
    text = response.strip()

    # Remove markdown code block if present
    fence = FENCE_PATTERN.search(text)
    if fence:
        text = fence.group(1).strip()

    brace_start = text.find("{")
    if brace_start == -1:
        return Failure(FailureKind.SCHEMA, "No JSON object found in response")

    try:
        data, _ = json.JSONDecoder().raw_decode(text, brace_start)
    except json.JSONDecodeError as e:
        return Failure(FailureKind.SCHEMA, f"Invalid JSON in response: {e}")

    if not isinstance(data, dict):
        return Failure(FailureKind.SCHEMA, "Response JSON is not an object")
    return Ok(data)


def validate_payload(model: type[M], data: dict[str, Any]) -> AttemptResult[M]:
    """Validate decoded JSON against a pydantic schema."""
    try:
        return Ok(model.model_validate(data))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        return Failure(FailureKind.SCHEMA, f"Invalid structure: {problems}")
