"""Triage Service HTTP handler.

Thin adapter over TriagePipeline. Every completed check-in goes through
/triage; the response always carries a priority and a routing plan.

Failure Handling:
    - Malformed body or incomplete questionnaire: 400
    - Any other error: 200 with a conservative result (MEDIUM, or HIGH when
      the text contains crisis language). The service never fails open.
"""
import asyncio
import logging
import os

from flask import Flask, jsonify, request

from mindcompass.shared.models import AgeRange, PriorityLevel, UserProfile, UserRole
from mindcompass.shared.utils import configure_pii_salt, hash_pii, normalize_alias
from mindcompass.services.checkin_service import PostgresCheckInStore
from mindcompass.services.llm_service import LLMConfig, create_llm
from mindcompass.services.outreach_service import SafetyPlan, handoff_for
from .config import CRISIS_ACKNOWLEDGMENT, FALLBACK_REFLECTION, TriageConfig
from .pipeline import TriagePipeline
from .questionnaire import ANSWER_LABELS, QUESTIONNAIRE_VERSION
from .scoring import IncompleteResponseError
from .session import CheckInSession

logger = logging.getLogger(__name__)

app = Flask(__name__)

pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

config = TriageConfig.from_env()


def _build_llm():
    llm_config = LLMConfig.from_env()
    if not llm_config.api_key:
        logger.warning(
            "LLM_UNAVAILABLE",
            extra={"provider": llm_config.provider.value, "reason": "missing_credentials"},
        )
        return None
    return create_llm(llm_config)


pipeline = TriagePipeline.from_config(config, llm=_build_llm())


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for ECS/ALB."""
    return jsonify({
        "status": "healthy",
        "service": "triage-service",
        "pattern_version": config.pattern_version,
        "questionnaire_version": QUESTIONNAIRE_VERSION,
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check: pipeline wired and, for Postgres, database reachable.

    Returns:
        200 if ready, 503 if not
    """
    if pipeline is None:
        return jsonify({"status": "not_ready", "reason": "pipeline_not_initialized"}), 503

    store = pipeline.store
    if isinstance(store, PostgresCheckInStore):
        db = store.connection_manager.health_check()
        if not db.get("healthy"):
            # Persistence is best-effort; triage still works without it
            return jsonify({"status": "degraded", "database": db}), 200

    return jsonify({"status": "ready"}), 200


@app.route("/questionnaire", methods=["GET"])
def questionnaire():
    """Weekly Pulse items and answer labels."""
    return jsonify({
        "version": QUESTIONNAIRE_VERSION,
        "answer_labels": list(ANSWER_LABELS),
        "items": [item.to_dict() for item in pipeline.scoring_engine.items],
    }), 200


@app.route("/resources", methods=["GET"])
def resources():
    """Routing plan for a priority (query param ``priority``, default low)."""
    try:
        priority = PriorityLevel.parse(request.args.get("priority", PriorityLevel.LOW.value))
    except ValueError:
        return jsonify({"error": "priority must be one of low, medium, high"}), 400

    return jsonify(pipeline.router.route(priority).to_dict()), 200


@app.route("/triage", methods=["POST"])
def triage():
    """Triage one completed check-in.

    Request Body:
        {
            "alias": "quiet_river",
            "mode": "scientific" | "journal",
            "answers": {"1": 0, "2": 3, ...},      (scientific mode)
            "text": "Free-text reflection",
            "safety_plan": {                          (optional)
                "coping_strategy": "...",
                "contact_name": "...",
                "contact_phone": "..."
            }
        }

    Response:
        {
            "assessment": {...},
            "routing": {...},
            "score": {...} | null,
            "winning_signal": "...",
            "handoffs": [{"kind": "call" | "sms", "label": "...", "link": "..."}]
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        logger.warning("TRIAGE_REQUEST_INVALID", extra={"reason": "empty_body"})
        return jsonify({"error": "Request body required"}), 400

    try:
        session = CheckInSession.from_dict(data, items=pipeline.scoring_engine.items)
        safety_plan = SafetyPlan.from_dict(data.get("safety_plan"))
    except ValueError as e:
        logger.warning("TRIAGE_REQUEST_INVALID", extra={"reason": str(e)})
        return jsonify({"error": str(e)}), 400

    logger.info(
        "TRIAGE_REQUESTED",
        extra={
            "alias_hash": hash_pii(session.alias),
            "mode": session.mode.value,
            "answer_count": len(session.answers),
            "text_length": len(session.free_text),
        },
    )

    try:
        outcome = asyncio.run(pipeline.run(session))
    except IncompleteResponseError as e:
        logger.warning(
            "TRIAGE_REQUEST_INCOMPLETE",
            extra={"alias_hash": hash_pii(session.alias), "missing_count": len(e.missing_item_ids)},
        )
        return jsonify({
            "error": "Every questionnaire item must be answered",
            "missing_item_ids": e.missing_item_ids,
        }), 400
    except Exception as e:
        return jsonify(_conservative_response(session, e)), 200

    body = outcome.to_dict()
    body["handoffs"] = _handoffs(outcome, safety_plan)
    return jsonify(body), 200


def _handoffs(outcome, safety_plan: SafetyPlan) -> list:
    """Outbound links for the response; a failure here never drops the triage result."""
    try:
        return [
            handoff.to_dict()
            for handoff in handoff_for(outcome.result, safety_plan, outcome.plan.emergency_contacts)
        ]
    except Exception as e:
        logger.error(
            "CONTACT_HANDOFF_FAILED",
            extra={
                "assessment_id": outcome.result.assessment_id,
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        return []


def _conservative_response(session: CheckInSession, error: Exception) -> dict:
    """Response used when the pipeline itself breaks.

    The crisis detector is still consulted so explicit risk language keeps
    its HIGH routing.
    """
    is_crisis = pipeline.crisis_detector.is_crisis(session.free_text)
    priority = PriorityLevel.HIGH if is_crisis else PriorityLevel.MEDIUM

    logger.error(
        "TRIAGE_ERROR",
        extra={
            "alias_hash": hash_pii(session.alias),
            "error": str(error),
            "error_type": type(error).__name__,
            "action": f"DEFAULTING_TO_{priority.name}",
        },
    )

    return {
        "assessment": {
            "final_priority": priority.value,
            "reflection": CRISIS_ACKNOWLEDGMENT if is_crisis else FALLBACK_REFLECTION,
            "crisis_override_applied": is_crisis,
        },
        "routing": pipeline.router.route(priority).to_dict(),
        "score": None,
        "winning_signal": "error_fallback",
        "handoffs": [],
        "error": "Triage error - defaulting to conservative priority",
    }


@app.route("/users/<alias>", methods=["GET"])
def get_user(alias: str):
    """Profile and streak stats for an alias (created empty if new)."""
    try:
        record = pipeline.store.get_or_create_user(alias)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "alias": record.alias,
        "profile": record.profile.to_dict() if record.profile else None,
        "stats": record.stats.to_dict(),
    }), 200


@app.route("/users/<alias>/profile", methods=["PUT"])
def put_profile(alias: str):
    """Create or replace the profile for an alias.

    Request Body:
        {"role": "Student" | "Professional", "age_range": "18-21" | "22-25" | "26-30" | "30+"}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    try:
        profile = UserProfile(
            alias=normalize_alias(alias),
            role=UserRole(data.get("role")),
            age_range=AgeRange(data.get("age_range")),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    pipeline.store.update_user_profile(profile)
    return jsonify({"profile": profile.to_dict()}), 200


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8002"))
    app.run(host="0.0.0.0", port=port, debug=False)
