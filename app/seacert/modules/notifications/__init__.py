"""
In-app notifications (task / warning / info / success) per user.
"""
