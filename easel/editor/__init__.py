"""Editor sessions — the stateful layer a UI drives for one artwork record."""

from easel.editor.session import (
    ArtworkEditor,
    EditorServices,
    RecordNotPersistedError,
    default_record,
)

__all__ = [
    "ArtworkEditor",
    "EditorServices",
    "RecordNotPersistedError",
    "default_record",
]
