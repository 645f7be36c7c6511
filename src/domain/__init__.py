"""
Domain layer for the job email sync.

This layer contains:
- Data models (raw messages, candidates, structured records, failures)
- Result types (explicit parse and reconcile outcomes)
- The staged sync pipeline
"""
