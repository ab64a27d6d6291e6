"""SMUVES — Operation-level error types.

Connector failures live next to their clients (``HubSpotAPIError``,
``SheetsAPIError``); the types here describe whole-operation outcomes that
route handlers translate into ``{"success": false, "error": ...}``.
"""


class SmuvesError(Exception):
    """Base class for errors surfaced verbatim to the caller."""

    status_code = 500


class ConfigurationError(SmuvesError):
    """Missing column, credentials or content. Nothing was written."""

    status_code = 400


class VersionNotFoundError(SmuvesError):
    """No snapshot rows exist for the requested backup lineage."""

    status_code = 404

    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(f"Could not find version with ID: {version_id}")
