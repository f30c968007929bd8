"""Services for the banking kernel (write side)."""

from banca_kernel.services.approval_workflow import ApprovalWorkflow
from banca_kernel.services.auditor_service import AuditorService
from banca_kernel.services.balance_ledger import BalanceLedger
from banca_kernel.services.beneficiary_service import BeneficiaryService
from banca_kernel.services.engine_base import MovementEngine
from banca_kernel.services.factory import BankingEngines, build_engines
from banca_kernel.services.idempotency_guard import IdempotencyGuard
from banca_kernel.services.pago_servicio_engine import PagoServicioEngine
from banca_kernel.services.provider_service import ProviderService
from banca_kernel.services.receipt import render_receipt_text
from banca_kernel.services.transferencia_engine import TransferenciaEngine

__all__ = [
    "ApprovalWorkflow",
    "AuditorService",
    "BalanceLedger",
    "BankingEngines",
    "BeneficiaryService",
    "IdempotencyGuard",
    "MovementEngine",
    "PagoServicioEngine",
    "ProviderService",
    "TransferenciaEngine",
    "build_engines",
    "render_receipt_text",
]
