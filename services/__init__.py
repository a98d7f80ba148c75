"""
Services layer for LabelSheetPrint.

This module contains the business logic services:
- PrintJobOrchestrator: register -> render -> deliver state machine (async)
- LabelJobService: Job threads and result store
- label_requests: Cart builders for manual and order-reprint labels

Thread Model:
    Main Thread (Flask)
    └── LabelJobService threads (one per submission / reprint)
        └── asyncio.run(orchestrator.run(...))

Each job thread builds its own orchestrator from a printer settings
snapshot, ensuring complete isolation between jobs.
"""

from .print_orchestrator import PrintJobOrchestrator
from .job_service import JobNotReprintableError, JobRecord, JobResultStore, LabelJobService

__all__ = [
    "PrintJobOrchestrator",
    "LabelJobService",
    "JobNotReprintableError",
    "JobRecord",
    "JobResultStore",
]
