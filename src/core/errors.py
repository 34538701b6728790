# src/core/errors.py — v1
"""Error taxonomy shared by the prompt, conversation, workflow and streaming layers.

Every error carries a stable ``code`` used by the stream protocol when the
failure is reported to a client as an ``error`` event.
"""

from __future__ import annotations


class StoryloomError(Exception):
    """Base class for all storyloom errors."""

    code = "STORYLOOM_ERROR"


class InputValidationError(StoryloomError, ValueError):
    """Malformed or missing caller input. Raised before any state change."""

    code = "VALIDATION_ERROR"


class PersonaNotFoundError(StoryloomError, LookupError):
    """Requested persona id is not in the registry."""

    code = "PERSONA_NOT_FOUND"

    def __init__(self, persona_id: str) -> None:
        self.persona_id = persona_id
        super().__init__(f"Persona '{persona_id}' does not exist")


class PromptLoadError(StoryloomError):
    """A persona document or a required module could not be loaded."""

    code = "PROMPT_LOAD_ERROR"


class ParseError(StoryloomError):
    """A prompt document could not be parsed into sections.

    Never escapes the parser: callers receive a raw-text passthrough document.
    """

    code = "PARSE_ERROR"


class GenerationError(StoryloomError):
    """The generation backend failed. Carries the upstream status and message."""

    code = "GENERATION_ERROR"

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        self.upstream_message = message
        prefix = f"API Error: {status} - " if status is not None else ""
        super().__init__(f"{prefix}{message}")


class WorkflowNotFoundError(StoryloomError, LookupError):
    """No workflow is stored under the given id."""

    code = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' does not exist")


class WorkflowStateError(StoryloomError):
    """Operation is not allowed in the workflow's current status or phase."""

    code = "WORKFLOW_STATE_ERROR"
