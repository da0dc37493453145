from __future__ import annotations

import click
from flask import Flask, current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from lamusic_importer.errors import AuthenticationError


API_TOKEN_SALT = "lamusic-importer-api-token"
_PUBLIC_PATHS = {"/health", "/metrics"}


def _serializer(app: Flask | None = None) -> URLSafeTimedSerializer:
    target = app or current_app
    return URLSafeTimedSerializer(target.config["SECRET_KEY"], salt=API_TOKEN_SALT)


def issue_api_token(user_id: str, *, app: Flask | None = None) -> str:
    clean_user_id = str(user_id or "").strip()
    if not clean_user_id:
        raise ValueError("user_id obrigatorio para emitir token.")
    return _serializer(app).dumps({"user_id": clean_user_id})


def verify_api_token(token: str, *, app: Flask | None = None) -> str:
    target = app or current_app
    max_age = int(target.config.get("API_TOKEN_MAX_AGE_SECONDS") or 0) or None
    try:
        payload = _serializer(target).loads(token, max_age=max_age)
    except SignatureExpired:
        raise AuthenticationError(message_key="auth_invalid_token", details="Token expirado.") from None
    except BadSignature:
        raise AuthenticationError(message_key="auth_invalid_token", details="Assinatura invalida.") from None

    user_id = str((payload or {}).get("user_id") or "").strip() if isinstance(payload, dict) else ""
    if not user_id:
        raise AuthenticationError(message_key="auth_invalid_token", details="Token sem user_id.")
    return user_id


def _bearer_token() -> str | None:
    header = str(request.headers.get("Authorization") or "").strip()
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def current_user_id() -> str | None:
    return getattr(g, "user_id", None)


def register_auth(app: Flask) -> None:
    @app.before_request
    def _require_token() -> None:
        g.user_id = None
        path = request.path or "/"
        if path in _PUBLIC_PATHS or not path.startswith("/api/"):
            return
        if not app.config.get("AUTH_ENABLED", True):
            return

        token = _bearer_token()
        if token is None:
            raise AuthenticationError(details="Cabecalho Authorization ausente.")
        g.user_id = verify_api_token(token, app=app)

    @app.cli.group("auth")
    def auth_group() -> None:
        """Emissao de tokens de API."""

    @auth_group.command("issue-token")
    @click.option("--user-id", required=True, help="Identificador do usuario responsavel pelas importacoes.")
    def issue_token_command(user_id: str) -> None:
        click.echo(issue_api_token(user_id, app=app))
