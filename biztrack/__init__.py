"""
BizTrack - Source Package

Record keeping for small businesses: income, expenses, appointments
and an aggregate dashboard, backed by a real-time document store.

DESIGN PRINCIPLES:
1. Users only ever write inside their own namespace
2. Writes never block the UI; results come back through live listeners
3. Every subscription is cancelled exactly once
4. Every significant action is auditable
5. Storage and identity providers are swappable
"""

__version__ = "1.0.0"
__author__ = "BizTrack Team"
