from collections import namedtuple
from functools import wraps
from flask import current_app, g, jsonify, request

Actor = namedtuple("Actor", ["id", "role"])

def load_current_actor():
    # The auth gateway in front of us has already verified these
    actor_id = (request.headers.get(current_app.config.get("ACTOR_ID_HEADER", "X-Actor-Id")) or "").strip()
    role = (request.headers.get(current_app.config.get("ACTOR_ROLE_HEADER", "X-Actor-Role")) or "").strip().upper()
    if not actor_id:
        g.actor = None
        return
    g.actor = Actor(id=actor_id, role=role or "CUSTOMER")

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "actor", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
