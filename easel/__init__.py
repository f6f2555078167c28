"""Easel: artwork record editing and synchronization engine.

Maintains the nested attribute graph of one artwork record, the ordered
image collection with its primary-image invariant, the generated edition
inventory with its sold set, and the record's collection memberships
(one of them derived from status), and writes all of it through a
single save use case.
"""

__version__ = "0.1.0"
__description__ = "Artwork record editing and synchronization engine"

from easel.core.save_orchestrator import SaveOrchestrator
from easel.editor.session import ArtworkEditor, EditorServices
from easel.cli.app import app as cli

__all__ = ["ArtworkEditor", "EditorServices", "SaveOrchestrator", "cli", "__version__"]
