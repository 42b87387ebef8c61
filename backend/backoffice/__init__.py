"""
Restaurant back office: order lifecycle and ingredient stock ledger service.
"""

__version__ = "1.0.0"
