import json
from datetime import datetime, timezone


def now_iso():
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def json_dumps(obj):
    # Key order is kept: documents and view columns are rendered in stored order.
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def json_pretty(obj):
    return json.dumps(obj, ensure_ascii=False, indent=2)
