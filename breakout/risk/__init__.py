from .risk_manager import RiskEvaluator, RiskManager, RiskManagerOptions
from .state import RiskState

__all__ = ["RiskEvaluator", "RiskManager", "RiskManagerOptions", "RiskState"]
