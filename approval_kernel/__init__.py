"""
Approval Kernel - tiered loan approval workflow

A store-backed approval pipeline for microfinance loan applications with:
- Amount-based approval tiers (loan officer -> senior officer -> manager -> committee)
- Single pending assignment per application
- Append-only approval history
- Weighted committee voting with quorum
- Status-driven work queues
"""

__version__ = "0.1.0"
