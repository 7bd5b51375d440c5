"""
Worklog Kernel - Grant Compliance Pipeline

An append-only work-time ledger for instructional staff with:
- Entry validation (fields, allowability, overlap, caseload effective dating)
- Activity classification into grant-funding categories
- Idempotent, lock-protected weekly closure
- Sealed, tamper-evident weekly reports
- Full auditability via hash chain
"""

__version__ = "0.1.0"
