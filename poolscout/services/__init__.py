"""Service modules"""
from .exit_policy import ExitPolicy
from .orchestrator import Orchestrator, OrchestratorState
from .portfolio import PortfolioLedger
from .scoring import PoolScorer

__all__ = ["ExitPolicy", "Orchestrator", "OrchestratorState", "PortfolioLedger", "PoolScorer"]
