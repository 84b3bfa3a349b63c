import json, os
from typing import Any, Dict

def env(name: str, default: str = "") -> str:
    return os.environ.get(name, default)

def ok(body: Dict[str, Any]): return {"statusCode": 200, "body": json.dumps(body)}
def err(msg: str, code: int = 500, **extra): return {"statusCode": code, "body": json.dumps({"error": msg, **extra})}
