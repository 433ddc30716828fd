import asyncio
import time
from collections import deque
from typing import Any, Dict, Optional, Sequence, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS

from cephcrypto import (
    CryptoSession,
    FormatError,
    InvalidArgument,
    JsonFileKeyStore,
    Unavailable,
    check_password,
    hash_password,
    query_password_salt,
)
from cephcrypto import config
from cephcrypto.logger_config import setup_logger

DB_NAME = "service"
STORE = JsonFileKeyStore()

log = setup_logger("cephcrypto.service", "service.log")

app = Flask(__name__)
CORS(app, resources={r"/api/*": {"origins": "*"}})

# -------------------- helpers --------------------

def get_json_body() -> Dict[str, Any]:
    if request.is_json:
        obj = request.get_json(silent=True)
        if isinstance(obj, dict):
            return obj
    if request.form:
        return dict(request.form)
    return {}

def require_fields(body: Dict[str, Any], fields: Tuple[str, ...]) -> Tuple[bool, str]:
    missing = [f for f in fields if (body.get(f) is None or str(body.get(f)).strip() == "")]
    if missing:
        return False, f"missing fields: {', '.join(missing)}"
    return True, ""

def _session(access_path: str) -> CryptoSession:
    return CryptoSession(DB_NAME, STORE).set_access_path(access_path)

def _run(coro):
    return asyncio.run(coro)

@app.errorhandler(InvalidArgument)
@app.errorhandler(FormatError)
def _bad_request(e):
    return jsonify({"ok": False, "error": str(e)}), 400

@app.errorhandler(Unavailable)
def _unavailable(e):
    return jsonify({"ok": False, "error": str(e)}), 503

# ========== METRICS: per-route latency ==========

METRICS_WINDOW = 1000

METRICS: Dict[str, Any] = {
    "requests": {},                 # route_key -> deque of the last METRICS_WINDOW ms
}

def _record_request_latency(key: str, ms: float):
    METRICS["requests"].setdefault(key, deque(maxlen=METRICS_WINDOW))
    METRICS["requests"][key].append(ms)

def _percentile(vals: Sequence[float], p: float) -> Optional[float]:
    if not vals: return None
    s = sorted(vals)
    k = (len(s)-1) * p
    f = int(k); c = min(f+1, len(s)-1)
    if f == c: return s[f]
    return s[f] + (s[c]-s[f])*(k-f)

def _agg(vals: Sequence[float]) -> Dict[str, Any]:
    if not vals:
        return {"count": 0, "avg_ms": None, "p50_ms": None, "p95_ms": None, "max_ms": None}
    return {
        "count": len(vals),
        "avg_ms": sum(vals)/len(vals),
        "p50_ms": _percentile(vals, 0.50),
        "p95_ms": _percentile(vals, 0.95),
        "max_ms": max(vals),
    }

def measure(route_key: str):
    def deco(fn):
        def wrapper(*a, **kw):
            t0 = time.perf_counter()
            try:
                return fn(*a, **kw)
            finally:
                dt = (time.perf_counter() - t0) * 1000.0
                _record_request_latency(route_key, dt)
        wrapper.__name__ = fn.__name__
        return wrapper
    return deco

@app.get("/api/metrics")
def metrics():
    return jsonify({"ok": True, "requests": {k: _agg(v) for k, v in METRICS["requests"].items()}})

# -------------------- PASSWORDS --------------------

@app.post("/api/password/hash")
@measure("/api/password/hash")
def password_hash():
    b = get_json_body()
    ok, msg = require_fields(b, ("password",))
    if not ok: return jsonify({"ok": False, "error": msg}), 400
    hashed = _run(hash_password(b["password"], b.get("salt"), b.get("encoding", "base64")))
    return jsonify({"ok": True, "hash": hashed})

@app.post("/api/password/check")
@measure("/api/password/check")
def password_check():
    b = get_json_body()
    ok, msg = require_fields(b, ("password", "hash"))
    if not ok: return jsonify({"ok": False, "error": msg}), 400
    return jsonify({"ok": True, "valid": _run(check_password(b["password"], b["hash"]))})

@app.post("/api/password/salt")
@measure("/api/password/salt")
def password_salt():
    b = get_json_body()
    ok, msg = require_fields(b, ("hash",))
    if not ok: return jsonify({"ok": False, "error": msg}), 400
    salt = query_password_salt(b["hash"])
    if salt is None:
        return jsonify({"ok": False, "error": "malformed hash string"}), 400
    return jsonify({"ok": True, "salt": salt})

# -------------------- KEYS --------------------

@app.post("/api/keys/init")
@measure("/api/keys/init")
def keys_init():
    b = get_json_body()
    ok, msg = require_fields(b, ("accessPath",))
    if not ok: return jsonify({"ok": False, "error": msg}), 400
    s = _session(str(b["accessPath"]).strip())
    _run(s.generate_key_pair(b.get("exportPassword") or None))
    return jsonify({
        "ok": True,
        "publicKey": s.get_public_key_string(),
        "privateKey": s.get_private_key_string(),
    })

@app.get("/api/keys/pub/<access_path>")
@measure("/api/keys/pub")
def get_pub(access_path: str):
    s = _session(access_path)
    _run(s.load_key_pair())
    if not s.has_public_key():
        return jsonify({"ok": False, "error": "no key pair for this access path"}), 404
    return jsonify({"ok": True, "publicKey": s.get_public_key_string()})

@app.post("/api/keys/import")
@measure("/api/keys/import")
def keys_import():
    b = get_json_body()
    ok, msg = require_fields(b, ("accessPath", "privateKey", "exportPassword"))
    if not ok: return jsonify({"ok": False, "error": msg}), 400
    s = _session(str(b["accessPath"]).strip())
    imported = _run(s.import_private_key(b["privateKey"], b["exportPassword"]))
    if not imported:
        return jsonify({"ok": False, "imported": False, "error": "wrong export password"}), 403
    return jsonify({"ok": True, "imported": True, "publicKey": s.get_public_key_string()})

@app.post("/api/keys/remove")
@measure("/api/keys/remove")
def keys_remove():
    b = get_json_body()
    ok, msg = require_fields(b, ("accessPath",))
    if not ok: return jsonify({"ok": False, "error": msg}), 400
    _run(_session(str(b["accessPath"]).strip()).remove_key_pair())
    return jsonify({"ok": True})

# -------------------- ENVELOPES --------------------

@app.post("/api/envelope/encrypt")
@measure("/api/envelope/encrypt")
def envelope_encrypt():
    b = get_json_body()
    ok, msg = require_fields(b, ("publicKey", "object"))
    if not ok: return jsonify({"ok": False, "error": msg}), 400
    s = CryptoSession()
    _run(s.import_public_key(b["publicKey"]))
    envelope = _run(s.encrypt_object(b["object"], b.get("version")))
    return jsonify({"ok": True, **envelope})

@app.post("/api/envelope/decrypt")
@measure("/api/envelope/decrypt")
def envelope_decrypt():
    b = get_json_body()
    ok, msg = require_fields(b, ("accessPath", "key", "message"))
    if not ok: return jsonify({"ok": False, "error": msg}), 400
    s = _session(str(b["accessPath"]).strip())
    _run(s.load_key_pair())
    obj = _run(s.decrypt_object(b["key"], b["message"]))
    if obj is False:
        log.warning(f"[ENVELOPE_MISMATCH] access_path={s.access_path}")
        return jsonify({"ok": False, "error": "envelope was not encrypted for this key pair"}), 422
    return jsonify({"ok": True, "object": obj})

# -------------------- MAIN --------------------

if __name__ == "__main__":
    app.run(host=config.HOST, port=config.PORT, debug=True)
