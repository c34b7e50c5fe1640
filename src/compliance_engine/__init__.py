"""Compliance-Engine: delivery compliance verification and audit."""

from compliance_engine.checks.gate import GateResult, blocking_checks, can_complete
from compliance_engine.checks.payloads import EvaluationContext
from compliance_engine.checks.states import CheckStatus, CheckType
from compliance_engine.client import ComplianceClient
from compliance_engine.policy.registry import CheckDefinitionRegistry
from compliance_engine.rules.evaluators import Verdict, evaluate

__all__ = [
    "ComplianceClient",
    "CheckDefinitionRegistry",
    "CheckStatus",
    "CheckType",
    "EvaluationContext",
    "GateResult",
    "Verdict",
    "blocking_checks",
    "can_complete",
    "evaluate",
]
__version__ = "0.1.0"
