# backend/fieldstock/serve.py
"""
Run the fieldstock API under uvicorn.

    python -m fieldstock.serve

TLS is enabled when SSL_CERTFILE and SSL_KEYFILE are both set.
"""

import os
from typing import Dict

import uvicorn


def _truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _ssl_options() -> Dict[str, str]:
    certfile = os.getenv("SSL_CERTFILE")
    keyfile = os.getenv("SSL_KEYFILE")
    if not (certfile and keyfile):
        return {}
    return {"ssl_certfile": certfile, "ssl_keyfile": keyfile}


def main() -> None:
    uvicorn.run(
        "fieldstock.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=_truthy(os.getenv("RELOAD", "false")),
        log_level=os.getenv("LOG_LEVEL", "info"),
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", "*"),
        **_ssl_options(),
    )


if __name__ == "__main__":
    main()
