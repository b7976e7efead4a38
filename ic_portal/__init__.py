"""
IC Portal
Matching portal between students and professors for Scientific Initiation projects.

Architecture:
- Lifecycle engine: the only writer of application status and project vacancies
- Storage gateway: in-memory, MongoDB, or SQL backend behind one contract
- Identity provider: issues the bearer tokens, accounts live there
"""

__version__ = "1.0.0"
