"""
Layer 3 — Submission
Posts the capture set to the remote verification API.
"""
from .client import APIClient, SubmissionPayload, METHOD_PROCESS_IDV

__all__ = ['APIClient', 'SubmissionPayload', 'METHOD_PROCESS_IDV']
