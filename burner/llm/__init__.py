"""
LLM Access Module.

Completion client, credential rotation, tagged attempt results and the
fixed-budget retry runner shared by question generation and grading.
"""

from burner.llm.client import Completion, LLMClient
from burner.llm.keys import KeyRotator, next_index
from burner.llm.parsing import extract_json_object, validate_payload
from burner.llm.retry import (
    AttemptResult,
    Failure,
    FailureKind,
    Ok,
    RetryPolicy,
    run_with_retry,
)

__all__ = [
    "AttemptResult",
    "Completion",
    "Failure",
    "FailureKind",
    "KeyRotator",
    "LLMClient",
    "Ok",
    "RetryPolicy",
    "extract_json_object",
    "next_index",
    "run_with_retry",
    "validate_payload",
]
