"""Background operation progress orchestrator.

Import concrete modules (``store``, ``orchestrator`` ...) directly; this package
stays free of re-exports so the event modules can depend on ``models``.
"""
