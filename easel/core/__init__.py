"""Core engine: attribute store, image collection, editions, validation,
membership reconciliation and the save orchestrator."""
