"""
Engine wiring for one unit of work.

``build_engines`` creates every kernel service exactly once for a session
and hands the shared instances to both engines, so a transfer, a payment
and an approval inside the same request see the same ledger, guard and
audit trail.

Usage:
    engines = build_engines(session, config.policy, config.scheduling)
    engines.transfers.execute_transfer(request)
    engines.for_kind(TransactionKind.SERVICE_PAYMENT).execute_scheduled(txn_id)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from banca_kernel.domain.clock import Clock, SystemClock
from banca_kernel.domain.policy import SchedulingPolicy, TransactionPolicy
from banca_kernel.domain.transaction_state import TransactionKind
from banca_kernel.selectors.transaction_selector import TransactionSelector
from banca_kernel.services.approval_workflow import ApprovalWorkflow
from banca_kernel.services.auditor_service import AuditorService
from banca_kernel.services.balance_ledger import BalanceLedger
from banca_kernel.services.beneficiary_service import BeneficiaryService
from banca_kernel.services.engine_base import MovementEngine
from banca_kernel.services.idempotency_guard import IdempotencyGuard
from banca_kernel.services.pago_servicio_engine import PagoServicioEngine
from banca_kernel.services.provider_service import ProviderService
from banca_kernel.services.transferencia_engine import TransferenciaEngine


@dataclass(frozen=True)
class BankingEngines:
    ledger: BalanceLedger
    workflow: ApprovalWorkflow
    transfers: TransferenciaEngine
    payments: PagoServicioEngine
    beneficiaries: BeneficiaryService
    providers: ProviderService
    transactions: TransactionSelector

    def for_kind(self, kind: TransactionKind | str) -> MovementEngine:
        """The engine that owns transactions of ``kind``."""
        if TransactionKind(kind) is TransactionKind.SERVICE_PAYMENT:
            return self.payments
        return self.transfers


def build_engines(
    session: Session,
    policy: TransactionPolicy,
    scheduling: SchedulingPolicy | None = None,
    clock: Clock | None = None,
) -> BankingEngines:
    clock = clock or SystemClock()
    auditor = AuditorService(session, clock)
    ledger = BalanceLedger(session, policy, clock)
    guard = IdempotencyGuard(session)
    workflow = ApprovalWorkflow(session, ledger, auditor, clock)
    providers = ProviderService(session, auditor, clock)
    shared = {"ledger": ledger, "guard": guard, "auditor": auditor, "workflow": workflow}

    return BankingEngines(
        ledger=ledger,
        workflow=workflow,
        transfers=TransferenciaEngine(session, policy, scheduling, clock, **shared),
        payments=PagoServicioEngine(
            session, policy, scheduling, clock, providers=providers, **shared,
        ),
        beneficiaries=BeneficiaryService(session, policy, auditor, clock),
        providers=providers,
        transactions=TransactionSelector(session),
    )
