"""Fake worker speaking the sidecar line protocol, used by the end-to-end tests.

Methods:
    getServers   -> ["srv-a", "srv-b"]
    echo         -> params
    fail         -> error {"code": -32000, "message": params["message"]}
    delay        -> params["value"] after params["seconds"] (answered out of order)
    silent       -> never answered
    emit         -> emits {"event": params["name"], "data": params["data"]}, then "ok"
    garbage      -> writes a non-JSON line, then "ok"
    stderr       -> writes params["text"] to stderr, then "ok"
    getEnv       -> os.environ.get(params["key"])
    crash        -> exits with code 3 without answering
    shutdown     -> {"success": true}, then exits 0
"""

import json
import os
import sys
import threading
import time

_lock = threading.Lock()


def send(obj):
    line = json.dumps(obj) + "\n"
    with _lock:
        sys.stdout.write(line)
        sys.stdout.flush()


def reply_later(req_id, seconds, value):
    def _run():
        time.sleep(seconds)
        send({"id": req_id, "result": value})

    threading.Thread(target=_run, daemon=True).start()


def handle(msg):
    req_id = msg.get("id")
    method = msg.get("method")
    params = msg.get("params") or {}

    if method == "getServers":
        send({"id": req_id, "result": ["srv-a", "srv-b"]})
    elif method == "echo":
        send({"id": req_id, "result": params})
    elif method == "fail":
        send({"id": req_id, "error": {"code": -32000, "message": params.get("message", "boom")}})
    elif method == "delay":
        reply_later(req_id, float(params.get("seconds", 0.1)), params.get("value"))
    elif method == "silent":
        pass
    elif method == "emit":
        send({"event": params.get("name"), "data": params.get("data")})
        send({"id": req_id, "result": "ok"})
    elif method == "garbage":
        with _lock:
            sys.stdout.write("this is not json\n")
            sys.stdout.flush()
        send({"id": req_id, "result": "ok"})
    elif method == "stderr":
        sys.stderr.write(str(params.get("text", "")) + "\n")
        sys.stderr.flush()
        send({"id": req_id, "result": "ok"})
    elif method == "getEnv":
        send({"id": req_id, "result": os.environ.get(params.get("key", ""))})
    elif method == "crash":
        os._exit(3)
    elif method == "shutdown":
        send({"id": req_id, "result": {"success": True}})
        sys.exit(0)
    else:
        send({"id": req_id, "error": {"code": -32601, "message": "Unknown method: %s" % method}})


def main():
    sys.stderr.write("fake worker booting\n")
    sys.stderr.flush()
    send({"event": "ready", "data": {"version": "1.0.0", "pid": os.getpid(), "methods": ["getServers", "echo"]}})
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except ValueError:
            send({"error": {"code": -32700, "message": "Parse error"}})
            continue
        handle(msg)


if __name__ == "__main__":
    main()
