"""
Ledger Engines - pure calculators over ledger rows.

No I/O, no clock access, no database.  Every public calculator is wrapped
in ``@traced_engine`` and emits a LEDGER_ENGINE_TRACE record.

- allocation: FIFO payment matching and allocation-set validation
- balances: company, project, dashboard and list-totals rollups
- aging: receivable / payable aging buckets
- cash_flow: monthly figures and cumulative cash position
"""

from ledger_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    AgingReport,
    age_payables,
    age_receivables,
)
from ledger_engines.allocation import (
    AllocationCandidate,
    AllocationEngine,
    FifoResult,
    InvoiceSide,
    PaymentSide,
)
from ledger_engines.balances import (
    CompanyLedger,
    DashboardTotals,
    ProjectLedger,
    TransactionTotals,
    TypeTotals,
    accumulate,
    calculate_company_ledger,
    calculate_dashboard_totals,
    calculate_project_ledger,
    calculate_transaction_totals,
)
from ledger_engines.cash_flow import (
    CashFlowMonth,
    MonthlyTotals,
    cash_flow_report,
    monthly_totals,
)

__all__ = [
    "STANDARD_BUCKETS",
    "AgeBucket",
    "AgingReport",
    "age_payables",
    "age_receivables",
    "AllocationCandidate",
    "AllocationEngine",
    "FifoResult",
    "InvoiceSide",
    "PaymentSide",
    "CompanyLedger",
    "DashboardTotals",
    "ProjectLedger",
    "TransactionTotals",
    "TypeTotals",
    "accumulate",
    "calculate_company_ledger",
    "calculate_dashboard_totals",
    "calculate_project_ledger",
    "calculate_transaction_totals",
    "CashFlowMonth",
    "MonthlyTotals",
    "cash_flow_report",
    "monthly_totals",
]
