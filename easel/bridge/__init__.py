"""Bridge layer between the editing engine and its external services.

Modules
-------
persistence
    ``PersistenceService`` protocol and the SQLite-backed
    ``SqlitePersistence`` (records, images, collections, memberships, tags).
object_storage
    ``ObjectStorage`` protocol and ``LocalObjectStorage`` for uploads.
job_queue
    Bounded, coalescing outbound ``JobQueue`` and the
    ``QueuedImageJobTrigger`` that requests image-metadata regeneration.

Nothing in ``easel.core`` imports a concrete bridge; components receive
their services through constructor injection.
"""
