"""
sitefin_services -- the consistency engine's services.

Build an engine with ``build_engine(store)``; the services are also usable
individually with hand-wired collaborators.
"""

from sitefin_services.alert_engine import AlertEngine
from sitefin_services.conversion_service import ConversionService
from sitefin_services.hooks import HookOutcome, PostCommitHooks
from sitefin_services.invoice_ledger import InvoiceLedger
from sitefin_services.phase_gate import PhaseGate
from sitefin_services.treasury_calculator import TreasuryCalculator
from sitefin_services.verification_orchestrator import VerificationOrchestrator
from sitefin_services.wiring import FinanceEngine, build_engine

__all__ = [
    "AlertEngine",
    "ConversionService",
    "FinanceEngine",
    "HookOutcome",
    "InvoiceLedger",
    "PhaseGate",
    "PostCommitHooks",
    "TreasuryCalculator",
    "VerificationOrchestrator",
    "build_engine",
]
