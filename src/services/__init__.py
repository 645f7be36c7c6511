"""
Service functions for the job email sync.

This package contains the pure email helpers (subject filter, body and sender
extraction), prompt template loading and the failure report writer.
"""

__all__ = ['email', 'failures', 'prompts']
