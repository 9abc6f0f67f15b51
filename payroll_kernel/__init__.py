"""
Payroll Kernel

Novelty records, payroll period lifecycle and the pending-adjustment queue:
- Typed novelty catalogue with devengo/deduccion categories
- borrador -> cerrado -> reabierto -> cerrado period state machine
- Corrections to closed periods queued and drained idempotently
- Structured JSON logging and typed errors
"""

__version__ = "0.1.0"
