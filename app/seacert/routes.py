from flask import Blueprint

bp = Blueprint("routes", __name__)

API_AREAS = ("auth", "projects", "documents", "certificates", "notifications", "admin")


@bp.get("/")
def index():
    """Service banner listing the API roots."""
    return {
        "service": "seacert",
        "description": "Maritime project review and certification API",
        "api": {area: ("/auth" if area == "auth" else f"/api/{area}") for area in API_AREAS},
        "certificate_verification": "/api/certificates/verify/<certificate_number>",
    }


@bp.get("/health")
def health():
    """Liveness as JSON, for dashboards and the API client."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    # plain-text variant for the container orchestrator; touches neither DB nor session
    return "ok", 200
