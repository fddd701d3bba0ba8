import os

# Namespace used by get/delete when the caller does not pass one
DEFAULT_NAMESPACE = os.environ.get("DEFAULT_NAMESPACE", "default")

KUBECTL_BIN = os.environ.get("KUBECTL_BIN", "kubectl")
KUBECTL_TIMEOUT = int(os.environ.get("KUBECTL_TIMEOUT", 30))
KUBECONFIG_CONTEXT = os.environ.get("KUBECONFIG_CONTEXT")

CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "*")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", 8000))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Label every operator is expected to propagate from the custom resource to its pods
POD_INSTANCE_LABEL = os.environ.get("POD_INSTANCE_LABEL", "app.kubernetes.io/instance")

MANAGED_BY = "kubefoundry"
