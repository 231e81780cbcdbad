"""Service layer interfaces."""

from autorun.services.batch import BatchOrchestrator, BatchOrchestratorImpl

__all__ = ["BatchOrchestrator", "BatchOrchestratorImpl"]
