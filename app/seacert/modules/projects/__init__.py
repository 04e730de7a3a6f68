"""
Projects module.

A project is a client's submission for review and certification:
- created as Draft, with a sequential code (MRN-<year>-<seq>)
- moves to Under Review once submitted (or when its first document arrives)
- becomes Approved only when a certificate is issued
- can be Rejected by a manager and Archived afterwards
"""
