"""
Certificates module.

Certificates carry a sequential number (SEA-<year>-<seq>), a one-year
validity, recorded sign-offs and a public verification code.
"""
