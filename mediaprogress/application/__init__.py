"""Application layer.

Wires the orchestrator's collaborators together. Hosts create one ``Container``
and hand ``container.progress`` to every view that shows background jobs.
"""

from .container import Container

__all__ = ["Container"]
