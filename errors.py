"""Shared error codes, user-facing messages and pipeline exceptions."""

from __future__ import annotations

CONFIG_MISMATCH = "CONFIG_MISMATCH"
PERMISSION_DENIED = "PERMISSION_DENIED"
MODEL_LOAD_FAILED = "MODEL_LOAD_FAILED"
SESSION_START_FAILED = "SESSION_START_FAILED"
INFERENCE_FAILED = "INFERENCE_FAILED"
ENGINE_ERROR = "ENGINE_ERROR"
RECOGNITION_TIMEOUT = "RECOGNITION_TIMEOUT"

ERROR_MESSAGES = {
    CONFIG_MISMATCH: "Classifier configuration is invalid.",
    PERMISSION_DENIED: "Microphone permission is required.",
    MODEL_LOAD_FAILED: "Failed to load voice recognition model.",
    SESSION_START_FAILED: "Failed to start voice recognition.",
    INFERENCE_FAILED: "Classification failed.",
    ENGINE_ERROR: "Voice recognition reported an error.",
    RECOGNITION_TIMEOUT: "Voice recognition timed out.",
}


class PipelineError(Exception):
    code = ENGINE_ERROR

    def __init__(self, message: str = "") -> None:
        self.message = message or ERROR_MESSAGES.get(self.code, "")
        super().__init__(self.message)


class ConfigMismatch(PipelineError):
    code = CONFIG_MISMATCH


class PermissionDenied(PipelineError):
    code = PERMISSION_DENIED


class ModelLoadFailure(PipelineError):
    code = MODEL_LOAD_FAILED


class SessionStartFailure(PipelineError):
    code = SESSION_START_FAILED


class InferenceFailure(PipelineError):
    code = INFERENCE_FAILED
