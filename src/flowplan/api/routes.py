"""HTTP routes for the API server."""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify, request

from ..core.exceptions import (
    FlowchartDecodeError,
    FlowchartNotFoundError,
    FlowchartValidationError,
)
from ..storage.store import FlowchartStore
from .common import error_response

logger = logging.getLogger("flowplan.api")


def register_routes(app: Flask, *, store: FlowchartStore) -> None:
    @app.before_request
    def log_request() -> None:
        logger.info(
            "HTTP %s %s from %s",
            request.method,
            request.path,
            request.remote_addr,
        )

    @app.errorhandler(FlowchartNotFoundError)
    def handle_not_found(exc: FlowchartNotFoundError) -> Any:
        return error_response(exc.message, 404)

    @app.errorhandler(FlowchartValidationError)
    def handle_validation(exc: FlowchartValidationError) -> Any:
        return error_response(exc.message, 400)

    @app.errorhandler(FlowchartDecodeError)
    def handle_decode(exc: FlowchartDecodeError) -> Any:
        logger.error("Decode failure serving %s: %s", request.path, exc)
        return error_response(exc.message, 500)

    @app.get("/api/flowcharts")
    def list_flowcharts() -> Any:
        return jsonify(store.list())

    @app.get("/api/flowchart/<flowchart_id>")
    def get_flowchart(flowchart_id: str) -> Any:
        document = store.read(flowchart_id)
        if document is None:
            return error_response("Not found", 404)
        return jsonify(document.to_dict())

    @app.put("/api/flowchart/<flowchart_id>")
    def put_flowchart(flowchart_id: str) -> Any:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return error_response("Request body must be a JSON object", 400)
        document = store.upsert(flowchart_id, payload)
        return jsonify(document.to_dict())
