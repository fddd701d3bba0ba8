import argparse
import asyncio
import json
import logging
import sys

import yaml
from colorama import Fore, Style, init

from app import config
from app.providers.registry import ProviderRegistry
from app.services.deployment_service import DeploymentService
from app.services.errors import (
    ClusterApiError,
    ConfigValidationError,
    NotFoundError,
    extract_error_message,
)
from app.services.kubernetes import KubectlClient
from app.state import register_default_providers

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger("kubefoundry-manager")


def load_config_file(path):
    """Load a deployment config from a YAML or JSON file"""
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a mapping")
    return data


def resolve_provider(registry, raw, provider_id=None):
    provider_id = provider_id or raw.get("provider")
    if not provider_id:
        raise ValueError('The "provider" field is required (or pass --provider)')
    if not isinstance(provider_id, str):
        raise ValueError('The "provider" field must be a string')
    raw["provider"] = provider_id
    return registry.get_provider(provider_id)


def render_manifest(registry, raw, provider_id=None):
    """Validate a raw config and return the manifest as YAML"""
    provider = resolve_provider(registry, raw, provider_id)
    result = provider.validate_config(raw)
    if not result.valid:
        raise ConfigValidationError(result.errors)
    manifest = provider.generate_manifest(result.data)
    return yaml.safe_dump(manifest, sort_keys=False)


def print_installation(runtimes):
    for runtime in runtimes:
        color = Fore.GREEN if runtime.installed else Fore.RED
        marker = "installed" if runtime.installed else "not installed"
        print(f"{color}{runtime.name} ({runtime.id}): {marker}{Style.RESET_ALL}")
        print(f"  CRD found: {runtime.crd_found}  operator running: {runtime.operator_running}")
        print(f"  {runtime.message}")


async def run_cluster_action(args, registry):
    service = DeploymentService(registry, KubectlClient())

    if args.action == "list":
        page = await service.list_deployment_page(args.namespace)
        print(json.dumps(page.model_dump(by_alias=True, exclude_none=True), indent=2))
        return True

    if args.action == "status":
        namespace = args.namespace or config.DEFAULT_NAMESPACE
        deployment = await service.get_deployment(args.name, namespace)
        if deployment is None:
            logger.error(f"Deployment {args.name} not found in namespace {namespace}")
            return False
        print(json.dumps(deployment.model_dump(by_alias=True, exclude_none=True), indent=2))
        return True

    if args.action == "delete":
        namespace = args.namespace or config.DEFAULT_NAMESPACE
        provider_id = await service.delete_deployment(args.name, namespace)
        logger.info(f"Deleted {args.name} from {namespace} ({provider_id})")
        return True

    if args.action == "create":
        raw = load_config_file(args.file)
        provider = resolve_provider(registry, raw, args.provider)
        deployment = await service.create_deployment(raw, provider.id)
        logger.info(f"Created {deployment.name} in {deployment.namespace} ({provider.id})")
        return True

    if args.action == "check":
        print_installation(await service.get_runtimes_status())
        return True

    return False


def main(argv=None):
    """Main function to parse arguments and manage deployments"""
    parser = argparse.ArgumentParser(
        description="Manage LLM inference deployments on Kubernetes"
    )
    parser.add_argument(
        "action",
        choices=["render", "validate", "create", "list", "status", "delete", "check"],
        help="Action to perform",
    )
    parser.add_argument("-f", "--file", help="Deployment config file (YAML or JSON)")
    parser.add_argument("-p", "--provider", help="Runtime provider id")
    parser.add_argument("-n", "--namespace", help="Kubernetes namespace")
    parser.add_argument("-r", "--name", help="Deployment name")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")

    args = parser.parse_args(argv)

    if args.debug:
        logger.setLevel(logging.DEBUG)

    registry = register_default_providers(ProviderRegistry())

    if args.action in ["render", "validate", "create"] and not args.file:
        logger.error(f"A config file is required for {args.action} action")
        parser.print_help()
        return 1

    if args.action in ["status", "delete"] and not args.name:
        logger.error(f"Deployment name is required for {args.action} action")
        parser.print_help()
        return 1

    try:
        if args.action == "render":
            print(render_manifest(registry, load_config_file(args.file), args.provider), end="")
            return 0

        if args.action == "validate":
            raw = load_config_file(args.file)
            result = resolve_provider(registry, raw, args.provider).validate_config(raw)
            if result.valid:
                print(f"{Fore.GREEN}Config is valid{Style.RESET_ALL}")
                return 0
            for error in result.errors:
                print(f"{Fore.RED}{error}{Style.RESET_ALL}")
            return 1

        success = asyncio.run(run_cluster_action(args, registry))
        return 0 if success else 1

    except ConfigValidationError as e:
        for error in e.errors:
            logger.error(error)
        return 1
    except ClusterApiError as e:
        logger.error(f"Kubernetes API error: {extract_error_message(e)}")
        return 1
    except (NotFoundError, ValueError, OSError, yaml.YAMLError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    init()
    sys.exit(main())
