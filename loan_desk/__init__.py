"""
Loan Desk

A role-based loan management back end: customer onboarding, loan
application and approval, EMI schedule generation on disbursal, and EMI
collection tracking, with Decimal money math and a hash-chained audit trail.
"""

__version__ = "1.0.0"
