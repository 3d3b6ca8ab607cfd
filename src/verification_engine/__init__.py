"""Work entry verification engine.

Approval workflow for employee work entries with immutable verified
records and team-scoped access control for managers and company admins.
"""

__version__ = "0.1.0"
