class CinegradeError(Exception):
    """Base class for all cinegrade errors."""


class UnknownPresetError(CinegradeError, ValueError):
    """Raised when a preset id or title does not name a catalog entry."""


class PresetLockedError(CinegradeError):
    """Raised when selecting a gated preset without the premium entitlement."""

    def __init__(self, preset_id: str):
        super().__init__(f"Preset '{preset_id}' requires Pro.")
        self.preset_id = preset_id


class SourceLoadError(CinegradeError):
    """Raised when a source image cannot be decoded."""


class ExportError(CinegradeError):
    """Raised when no renderable output exists for an export."""
