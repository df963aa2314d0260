"""CLI for checking manifests against the webhook policy.

Runs the same evaluation as the webhook for the pods in local manifest
files, using the current cluster for secrets and registry credentials.
"""

import argparse
import json
import sys
from typing import Any, Dict, Iterator, List, Optional

import yaml

from ..config import build_handler
from ..errors import AdmissionRequestError, KeychainInitError
from ..models.admission import PodVerificationRequest, VerificationStatus
from ..utils.logging import LogLevel, setup_logging
from ..utils.subprocess import check_prerequisites
from .serve import add_common_arguments, config_from_args

# Where the pod spec lives for each workload kind
POD_TEMPLATE_PATHS = {
    "Pod": (),
    "Deployment": ("spec", "template"),
    "DaemonSet": ("spec", "template"),
    "StatefulSet": ("spec", "template"),
    "ReplicaSet": ("spec", "template"),
    "Job": ("spec", "template"),
    "CronJob": ("spec", "jobTemplate", "spec", "template"),
}


def create_verify_parser(subparsers: Any) -> argparse.ArgumentParser:
    """Create the verify subparser."""
    parser = subparsers.add_parser(
        "verify",
        help="Check whether the pods in manifests would be admitted",
        description="""
Evaluate pods from manifest files the way the webhook would.

Accepts Pods and workloads with pod templates (Deployment, DaemonSet,
StatefulSet, ReplicaSet, Job, CronJob) in YAML or JSON. Secrets and
service accounts are read from the cluster of the current kubeconfig.
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check a deployment before applying it
  cosignwebhook verify -f deployment.yaml -n production

  # Read manifests from stdin
  kubectl create deployment app --image=ghcr.io/org/app:v1 --dry-run=client -o yaml | cosignwebhook verify -f -
""",
    )

    parser.add_argument(
        "-f", "--filename",
        dest="filenames",
        action="append",
        required=True,
        help="Manifest file to check ('-' for stdin), may be repeated",
    )
    parser.add_argument(
        "-n", "--namespace",
        default=None,
        help="Namespace for manifests without one (default: default)",
    )
    parser.add_argument(
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    add_common_arguments(parser)
    parser.set_defaults(log_level="error")

    return parser


def _dig(obj: Dict[str, Any], path) -> Optional[Dict[str, Any]]:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj if isinstance(obj, dict) else None


def extract_pods(document: Dict[str, Any], namespace: Optional[str]) -> Iterator[PodVerificationRequest]:
    """
    Yield a verification request for every pod spec in a manifest.

    Lists (``kind: List``) are expanded; unsupported kinds are ignored.
    """
    kind = document.get("kind")
    if kind == "List":
        for item in document.get("items") or []:
            if isinstance(item, dict):
                yield from extract_pods(item, namespace)
        return

    if kind not in POD_TEMPLATE_PATHS:
        return

    template = _dig(document, POD_TEMPLATE_PATHS[kind])
    if template is None:
        raise AdmissionRequestError(f"{kind} has no pod template")

    metadata = document.get("metadata") or {}
    pod = dict(template)
    pod_metadata = dict(pod.get("metadata") or {})
    pod_metadata.setdefault("name", metadata.get("name", ""))
    pod_metadata.setdefault("namespace", metadata.get("namespace") or namespace or "default")
    pod["metadata"] = pod_metadata

    yield PodVerificationRequest.from_pod(pod, uid=f"{kind}/{metadata.get('name', '')}")


def load_documents(filename: str) -> List[Dict[str, Any]]:
    """Load all YAML (or JSON) documents from a file or stdin."""
    if filename == "-":
        return [d for d in yaml.safe_load_all(sys.stdin) if isinstance(d, dict)]
    with open(filename) as f:
        return [d for d in yaml.safe_load_all(f) if isinstance(d, dict)]


def run_verify(args: argparse.Namespace) -> int:
    """
    Run manifest verification.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code: 0 if every pod would be admitted, 1 otherwise
    """
    setup_logging(LogLevel.from_string(args.log_level))

    missing = check_prerequisites([args.cosign_binary])
    if missing:
        print(f"❌ Missing required tools: {', '.join(missing)}", file=sys.stderr)
        return 1

    requests: List[PodVerificationRequest] = []
    for filename in args.filenames:
        try:
            for document in load_documents(filename):
                requests.extend(extract_pods(document, args.namespace))
        except (OSError, yaml.YAMLError, AdmissionRequestError) as e:
            print(f"❌ Can't read {filename}: {e}", file=sys.stderr)
            return 1

    if not requests:
        print("No pods found in manifests", file=sys.stderr)
        return 0

    config = config_from_args(args)
    config.emit_events = False
    handler = build_handler(config)

    results = []
    all_allowed = True
    for request in requests:
        try:
            result = handler.admit(request)
        except KeychainInitError as e:
            all_allowed = False
            results.append({"pod": request.uid, "allowed": False, "error": str(e)})
            continue

        all_allowed = all_allowed and result.decision.allowed
        results.append({
            "pod": request.uid,
            "namespace": request.namespace,
            "allowed": result.decision.allowed,
            "message": result.decision.message,
            "notification": result.notification.value if result.notification else None,
            "containers": [
                {
                    "name": o.container.name,
                    "image": o.container.image,
                    "status": o.status.value,
                    "reason": o.failure.value if o.failure else None,
                }
                for o in result.outcomes
            ],
        })

    if args.output == "json":
        print(json.dumps(results, indent=2))
    else:
        _print_text(results)

    return 0 if all_allowed else 1


def _print_text(results: List[Dict[str, Any]]) -> None:
    for result in results:
        mark = "✅" if result["allowed"] else "❌"
        print(f"{mark} {result['pod']}: {result.get('message') or result.get('error')}")
        for container in result.get("containers", []):
            status = container["status"]
            if status == VerificationStatus.FAILED.value:
                status = f"{status} ({container['reason']})"
            print(f"   • {container['name']} [{container['image']}]: {status}")
