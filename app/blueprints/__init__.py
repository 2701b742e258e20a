"""
Approval Workflow Service
Blueprint registry.
"""
