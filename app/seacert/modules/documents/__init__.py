"""
Documents module.

- Clients upload drawings/calculations per project; re-uploads bump the version
- Managers assign an expert; expert approval is stage 1, manager approval is final
- Review comments may be internal (staff-only)
- Every review decision lands in the append-only audit trail
"""
