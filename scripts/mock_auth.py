#!/usr/bin/env python3
"""Serve a fixed token table on ``/auth/v1/user`` for local runs and tests."""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer


def _user(user_id: int, role: str, **profile: int) -> dict[str, object]:
    return {"id": str(user_id), "app_metadata": {"role": role, **profile}}


TOKEN_USERS: dict[str, dict[str, object]] = {
    "admin-token": _user(1, "admin"),
    "hospital-token": _user(2, "hospital", hospital_profile_id=1),
    "doctor-token": _user(3, "doctor", doctor_profile_id=1),
}


class MockAuthHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        scheme, _, token = self.headers.get("Authorization", "").partition(" ")
        user = TOKEN_USERS.get(token.strip()) if scheme.lower() == "bearer" else None
        if self.path != "/auth/v1/user":
            self._reply(HTTPStatus.NOT_FOUND, {"detail": "not found"})
        elif user is None:
            self._reply(HTTPStatus.UNAUTHORIZED, {"detail": "invalid token"})
        else:
            self._reply(HTTPStatus.OK, user)

    def log_message(self, *_: object) -> None:
        pass

    def _reply(self, status: HTTPStatus, payload: dict[str, object]) -> None:
        body = json.dumps(payload).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    args = parser.parse_args()
    with ThreadingHTTPServer((args.host, args.port), MockAuthHandler) as server:
        print(f"mock auth on http://{args.host}:{args.port}", flush=True)
        server.serve_forever()
