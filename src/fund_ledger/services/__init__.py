from fund_ledger.services.import_analysis import (
    ColumnMapping,
    ImportAnalysis,
    ImportAnalyzer,
    ImportConfig,
    ImportSettings,
    ValidationSummary,
)
from fund_ledger.services.import_execution import (
    ImportBatch,
    ImportExecutionCoordinator,
)
from fund_ledger.services.interfaces import (
    EntityBalance,
    FundBalance,
    LedgerService,
    ReportingService,
)
from fund_ledger.services.ledger import LedgerServiceImpl
from fund_ledger.services.report_compiler import (
    CompiledQuery,
    FilterOperator,
    ParamStyle,
    ReportDefinition,
    ReportFilter,
    ReportQueryCompiler,
    ReportSort,
)
from fund_ledger.services.report_fields import (
    REGISTRY,
    DataSource,
    FieldDescriptor,
    FieldType,
    available_fields,
)
from fund_ledger.services.reporting import ReportingServiceImpl
from fund_ledger.services.transfers import (
    InterEntityTransfer,
    InterEntityTransferService,
    TransferRequest,
)

__all__ = [
    "REGISTRY",
    "ColumnMapping",
    "CompiledQuery",
    "DataSource",
    "EntityBalance",
    "FieldDescriptor",
    "FieldType",
    "FilterOperator",
    "FundBalance",
    "ImportAnalysis",
    "ImportAnalyzer",
    "ImportBatch",
    "ImportConfig",
    "ImportExecutionCoordinator",
    "ImportSettings",
    "InterEntityTransfer",
    "InterEntityTransferService",
    "LedgerService",
    "LedgerServiceImpl",
    "ParamStyle",
    "ReportDefinition",
    "ReportFilter",
    "ReportQueryCompiler",
    "ReportSort",
    "ReportingService",
    "ReportingServiceImpl",
    "TransferRequest",
    "ValidationSummary",
    "available_fields",
]
