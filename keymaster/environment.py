import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

if os.getenv("LOCAL_DEV"):
    print("Loading environment variables from .env file for local development.")
    from dotenv import load_dotenv

    load_dotenv(BASE_DIR / ".env")

_kubeconfig_path = os.getenv("KUBECONFIG", "config/kubeconfig")
if _kubeconfig_path and not os.path.isabs(_kubeconfig_path):
    # make kubeconfig path absolute if it's relative
    KUBECONFIG_PATH: str = str(BASE_DIR / _kubeconfig_path)
else:
    KUBECONFIG_PATH = _kubeconfig_path or ""

KUBERNETES_CONTEXT = os.getenv("KUBERNETES_CONTEXT")
KUBERNETES_IN_CLUSTER = os.getenv("KUBERNETES_IN_CLUSTER", "false").lower() in ("true", "1", "yes")

# Namespace holding team configs, api keys and the generated policies
KEY_NAMESPACE = os.getenv("KEY_NAMESPACE", "llm")

# Label the gateway authenticator uses to discover api key secrets
SECRET_SELECTOR_LABEL = os.getenv("SECRET_SELECTOR_LABEL", "kuadrant.io/apikeys-by")
SECRET_SELECTOR_VALUE = os.getenv("SECRET_SELECTOR_VALUE", "rhcl-keys")

# Gateway configuration
GATEWAY_NAME = os.getenv("GATEWAY_NAME", "inference-gateway")

# Policy management
ENABLE_POLICY_MANAGEMENT = os.getenv("ENABLE_POLICY_MANAGEMENT", "true").lower() in ("true", "1", "yes")

# Tier configuration
DEFAULT_TIER = os.getenv("DEFAULT_TIER", "standard")

# Default team configuration
DEFAULT_TEAM_ID = "default"
CREATE_DEFAULT_TEAM = os.getenv("CREATE_DEFAULT_TEAM", "true").lower() in ("true", "1", "yes")
DEFAULT_TEAM_TIER = os.getenv("DEFAULT_TEAM_TIER", "standard")

# Admin authentication; an empty key leaves the admin routes open
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

# Service configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8080"))
API_RELOAD = os.getenv("API_RELOAD", "false").lower() in ("true", "1", "yes")

# Logging
LOG_LEVEL = os.getenv("KEYMASTER_LOG_LEVEL", "INFO").upper()
