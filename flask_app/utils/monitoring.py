# flask_app/utils/monitoring.py
"""
Health check and Prometheus scrape endpoints
"""

from flask import Response, current_app, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from flask_app.models import db


class HealthChecker:
    """Reports whether the application can reach its database"""

    def basic_health_check(self):
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({"status": "unhealthy", "error": str(e)}), 503
        return (
            jsonify(
                {
                    "status": "healthy",
                    "app": current_app.config.get("APP_NAME"),
                    "version": current_app.config.get("APP_VERSION"),
                }
            ),
            200,
        )


def metrics_response():
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


def init_monitoring(app):
    """Register /health and /metrics when MONITORING_ENABLED is set"""
    if not app.config.get("MONITORING_ENABLED", False):
        return

    health_checker = HealthChecker()
    app.add_url_rule(
        app.config.get("HEALTH_CHECK_ENDPOINT", "/health"),
        "health_check",
        health_checker.basic_health_check,
    )
    app.add_url_rule(app.config.get("METRICS_ENDPOINT", "/metrics"), "metrics", metrics_response)
    app.logger.info("Monitoring endpoints registered")
