"""Error handlers for the application."""
import traceback

from flask import jsonify, redirect, render_template, request, url_for
from werkzeug.exceptions import HTTPException

from reviewportal.core.user_workflow import UserNotFoundError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(400)
    def bad_request(error):
        if _wants_json():
            return jsonify({"error": "Bad Request", "message": _description(error)}), 400
        return render_template(
            "errors/error.html",
            title="Bad Request",
            message=_description(error),
        ), 400

    @app.errorhandler(401)
    def unauthorized(error):
        if _wants_json():
            return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401
        return redirect(url_for("auth.login"))

    @app.errorhandler(403)
    def forbidden(error):
        if _wants_json():
            return jsonify({"error": "Forbidden", "message": "Insufficient permissions"}), 403
        return render_template(
            "errors/error.html",
            title="Forbidden",
            message="You do not have permission to access this page.",
        ), 403

    @app.errorhandler(404)
    def not_found(error):
        if _wants_json():
            return jsonify({"error": "Not Found", "message": "Resource not found"}), 404
        return render_template(
            "errors/error.html",
            title="Not Found",
            message="The page you requested does not exist.",
        ), 404

    @app.errorhandler(UserNotFoundError)
    def user_not_found(error):
        return not_found(error)

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error("Internal error: %s", error, exc_info=True)
        return _server_error_response()

    @app.errorhandler(Exception)
    def handle_exception(error):
        if isinstance(error, HTTPException):
            return error

        app.logger.error("Unhandled exception: %s", error, exc_info=True)
        return _server_error_response()

    def _server_error_response():
        if _wants_json():
            return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500

        # Tracebacks only in debug/demo mode
        show_details = app.debug or getattr(app.config.get("APP_CONFIG"), "demo_mode", False)
        return render_template(
            "errors/500.html",
            title="Internal Server Error",
            error_message=traceback.format_exc() if show_details else None,
            show_debug=show_details,
        ), 500


def _description(error) -> str:
    return getattr(error, "description", None) or str(error)


def _wants_json():
    """Check if the client wants a JSON response."""
    if request.is_json:
        return True
    return request.accept_mimetypes.accept_json and \
           not request.accept_mimetypes.accept_html
