from pydantic import BaseModel

from utils import auth, env, log
from utils.env import EnvVarSpec

logger = log.get_logger(__name__)


def _parse_bool(x: str) -> bool:
    return x.lower() == "true"


#### Types ####

class HttpServerConf(BaseModel):
    host: str
    port: int
    autoreload: bool

class SchedulerConf(BaseModel):
    sweep_seconds: float

class StreamConf(BaseModel):
    queue_size: int
    keepalive_seconds: float
    retry_ms: int

#### Env Vars ####

## Auth ##

USE_AUTH = EnvVarSpec(
    id="USE_AUTH",
    default="false",
    parse=_parse_bool,
    type=(bool, ...),
)

AUTH_OIDC_JWK_URL = EnvVarSpec(id="AUTH_OIDC_JWK_URL", is_optional=True)
AUTH_OIDC_AUDIENCE = EnvVarSpec(id="AUTH_OIDC_AUDIENCE", is_optional=True)
AUTH_OIDC_ISSUER = EnvVarSpec(id="AUTH_OIDC_ISSUER", is_optional=True)

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

## HTTP ##

HTTP_HOST = EnvVarSpec(id="HTTP_HOST", default="0.0.0.0")

HTTP_PORT = EnvVarSpec(
    id="HTTP_PORT",
    default="8000",
    parse=int,
    type=(int, ...),
)

HTTP_AUTORELOAD = EnvVarSpec(
    id="HTTP_AUTORELOAD",
    parse=_parse_bool,
    default="false",
    type=(bool, ...),
)

HTTP_EXPOSE_ERRORS = EnvVarSpec(
    id="HTTP_EXPOSE_ERRORS",
    default="false",
    parse=_parse_bool,
    type=(bool, ...),
)

## Ledger ##

LEDGER_BACKEND = EnvVarSpec(id="LEDGER_BACKEND", default="couchbase")

BID_APPEND_MAX_RETRIES = EnvVarSpec(
    id="BID_APPEND_MAX_RETRIES",
    default="5",
    parse=int,
    type=(int, ...),
)

## Scheduler ##

SCHEDULER_SWEEP_SECONDS = EnvVarSpec(
    id="SCHEDULER_SWEEP_SECONDS",
    default="15",
    parse=float,
    type=(float, ...),
)

## Live updates (SSE) ##

BROADCAST_QUEUE_SIZE = EnvVarSpec(
    id="BROADCAST_QUEUE_SIZE",
    default="100",
    parse=int,
    type=(int, ...),
)

SSE_KEEPALIVE_SECONDS = EnvVarSpec(
    id="SSE_KEEPALIVE_SECONDS",
    default="15",
    parse=float,
    type=(float, ...),
)

SSE_RETRY_MS = EnvVarSpec(
    id="SSE_RETRY_MS",
    default="3000",
    parse=int,
    type=(int, ...),
)

#### Validation ####

LEDGER_BACKENDS = ("couchbase", "memory")

VALIDATED_ENV_VARS = [
    USE_AUTH,
    HTTP_AUTORELOAD,
    HTTP_EXPOSE_ERRORS,
    HTTP_PORT,
    LOG_LEVEL,
    LEDGER_BACKEND,
    BID_APPEND_MAX_RETRIES,
    SCHEDULER_SWEEP_SECONDS,
    BROADCAST_QUEUE_SIZE,
    SSE_KEEPALIVE_SECONDS,
    SSE_RETRY_MS,
]

def validate() -> bool:
    specs = list(VALIDATED_ENV_VARS)
    # Auth vars are only required when auth is switched on
    if get_use_auth():
        specs.extend([
            AUTH_OIDC_JWK_URL.model_copy(update={"is_optional": False}),
            AUTH_OIDC_AUDIENCE.model_copy(update={"is_optional": False}),
            AUTH_OIDC_ISSUER.model_copy(update={"is_optional": False}),
        ])
    if not env.validate(specs):
        return False

    ok = True
    if get_ledger_backend() not in LEDGER_BACKENDS:
        logger.error(f"LEDGER_BACKEND must be one of {LEDGER_BACKENDS}")
        ok = False
    if get_scheduler_conf().sweep_seconds <= 0:
        logger.error("SCHEDULER_SWEEP_SECONDS must be positive")
        ok = False
    if get_stream_conf().queue_size <= 0:
        logger.error("BROADCAST_QUEUE_SIZE must be positive")
        ok = False
    return ok

#### Getters ####

def get_use_auth() -> bool:
    return env.parse(USE_AUTH)

def get_auth_config() -> auth.AuthClientConfig:
    """Get authentication configuration."""
    return auth.AuthClientConfig(
        jwk_url=env.parse(AUTH_OIDC_JWK_URL),
        audience=env.parse(AUTH_OIDC_AUDIENCE),
        issuer=env.parse(AUTH_OIDC_ISSUER),
    )

def get_http_expose_errors() -> bool:
    return env.parse(HTTP_EXPOSE_ERRORS)

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)

def get_http_conf() -> HttpServerConf:
    return HttpServerConf(
        host=env.parse(HTTP_HOST),
        port=env.parse(HTTP_PORT),
        autoreload=env.parse(HTTP_AUTORELOAD),
    )

def get_ledger_backend() -> str:
    return env.parse(LEDGER_BACKEND).lower()

def get_bid_append_max_retries() -> int:
    return max(0, env.parse(BID_APPEND_MAX_RETRIES))

def get_scheduler_conf() -> SchedulerConf:
    return SchedulerConf(sweep_seconds=env.parse(SCHEDULER_SWEEP_SECONDS))

def get_stream_conf() -> StreamConf:
    return StreamConf(
        queue_size=env.parse(BROADCAST_QUEUE_SIZE),
        keepalive_seconds=max(1.0, env.parse(SSE_KEEPALIVE_SECONDS)),
        retry_ms=max(0, env.parse(SSE_RETRY_MS)),
    )
