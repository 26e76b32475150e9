"""
Exception hierarchy for job processing.

Runners translate these into a structured `{code, message}` on the job row.
"""


class DialecticError(Exception):
    code = "INTERNAL_ERROR"
    retryable = False


class RecipeConfigurationError(DialecticError):
    """A recipe step is missing fields, uses deprecated fields, or names an unknown strategy."""
    code = "RECIPE_CONFIGURATION_ERROR"


class InvalidJobPayloadError(DialecticError):
    code = "INVALID_JOB_PAYLOAD"


class RequiredInputNotFoundError(DialecticError):
    code = "REQUIRED_INPUT_NOT_FOUND"

    def __init__(self, input_type: str):
        self.input_type = input_type
        super().__init__(f"A required input of type '{input_type}' was not found for the current job.")


class StorageConfigurationError(DialecticError):
    code = "STORAGE_CONFIGURATION_ERROR"


class StorageDownloadError(DialecticError):
    code = "STORAGE_DOWNLOAD_ERROR"
    retryable = True


class ContextWindowError(DialecticError):
    """The assembled request cannot be brought under the model's context window."""
    code = "CONTEXT_WINDOW_ERROR"


class DocumentIdentityError(DialecticError):
    code = "DOCUMENT_IDENTITY_ERROR"


class RagServiceError(DialecticError):
    code = "RAG_SERVICE_ERROR"
    retryable = True


class ModelCallError(DialecticError):
    code = "MODEL_CALL_ERROR"
    retryable = True


class RenderValidationError(DialecticError):
    code = "RENDER_VALIDATION_ERROR"
