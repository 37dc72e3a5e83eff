"""Shared API helpers."""

from __future__ import annotations

from typing import Any, Optional, Tuple

from flask import jsonify

from ..config.settings import Settings, get_settings


def cors_origins(settings: Optional[Settings] = None) -> list[str]:
    return (settings or get_settings()).cors_origin_list


def error_response(message: str, status: int, **extra: Any) -> Tuple[Any, int]:
    return jsonify({"error": message, **extra}), status
