"""`invoicedb-serve`: run the API under uvicorn with settings from the environment."""

import os
from typing import Any, Dict, Mapping, Optional

import uvicorn

APP_PATH = "invoicedb.main:app"

_TRUTHY = {"1", "true", "yes", "on"}

# env var -> uvicorn keyword
_TLS_SETTINGS = {
    "SSL_CERTFILE": "ssl_certfile",
    "SSL_KEYFILE": "ssl_keyfile",
    "SSL_CA_CERTS": "ssl_ca_certs",
    "SSL_KEYFILE_PASSWORD": "ssl_keyfile_password",
}


def uvicorn_options(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if env is None else env

    options: Dict[str, Any] = {
        "host": env.get("HOST", "0.0.0.0"),
        "port": int(env.get("PORT", "8000")),
        "log_level": env.get("LOG_LEVEL", "info").lower(),
        "proxy_headers": True,
        "forwarded_allow_ips": env.get("FORWARDED_ALLOW_IPS", "*"),
    }

    reload_enabled = env.get("RELOAD", "false").lower() in _TRUTHY
    if reload_enabled:
        options["reload"] = True
    else:
        # uvicorn ignores workers under reload.
        options["workers"] = max(1, int(env.get("WORKERS", "1")))

    tls = {option: env[name] for name, option in _TLS_SETTINGS.items() if env.get(name)}
    if bool(tls.get("ssl_certfile")) != bool(tls.get("ssl_keyfile")):
        raise SystemExit("SSL_CERTFILE and SSL_KEYFILE must be set together")
    options.update(tls)
    return options


def main() -> None:
    uvicorn.run(APP_PATH, **uvicorn_options())


if __name__ == "__main__":
    main()
