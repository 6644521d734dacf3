"""Error kinds shared by the upload, analysis and configuration layers.

Every error carries a stable machine `code` (used in the JSON API envelope)
and a user-facing `message` (shown inline in the page).
"""

from __future__ import annotations


class EcoGuardError(Exception):
    code = "ECOGUARD_ERROR"
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class FileTooLarge(EcoGuardError):
    code = "FILE_TOO_LARGE"
    default_message = "File size exceeds 2MB. Please upload a smaller image."


class DecodeError(EcoGuardError):
    code = "DECODE_ERROR"
    default_message = "Failed to read the image file."


class RequestError(EcoGuardError):
    code = "REQUEST_ERROR"
    default_message = "The analysis service could not be reached."


class ResponseParseError(EcoGuardError):
    code = "RESPONSE_PARSE_ERROR"
    default_message = "The analysis service returned an unexpected response."


class ConfigurationError(EcoGuardError):
    code = "CONFIGURATION_ERROR"
    default_message = "EcoGuard is not configured."
