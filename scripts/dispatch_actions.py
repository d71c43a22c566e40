"""Run one bulk machine action against a seeded, in-process registry."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List

import sys
from types import SimpleNamespace

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from server.machines import MachineError, MachineState
from server.observability import init_logging
from server.services import build_services
from server.settings import settings


def _load_seed(source: str) -> List[Dict[str, Any]]:
    if source.startswith("@"):
        path = Path(source[1:]).expanduser().resolve()
        try:
            text = path.read_text()
        except OSError as exc:
            raise SystemExit(f"Failed to read seed file: {exc}") from exc
    else:
        text = source
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Failed to decode seed JSON: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("machines", [])
    if not isinstance(data, list):
        raise SystemExit("Seed must be a list of machines or {\"machines\": [...]}")
    return data


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("action", help="Action to dispatch (start, reboot or stop)")
    parser.add_argument(
        "--seed",
        required=True,
        help="Machines as inline JSON or @/path/to/file.json",
    )
    parser.add_argument(
        "--cluster",
        default="default",
        help="Cluster id to dispatch against (default: default)",
    )
    parser.add_argument(
        "--tags",
        nargs="*",
        default=[],
        help="Tags every selected machine must carry",
    )

    args = parser.parse_args()

    init_logging("WARNING")
    # Always in-memory: a demo run never touches MACHINE_STORE_PATH.
    services = build_services(SimpleNamespace(ACTION_MAX_WORKERS=settings.ACTION_MAX_WORKERS))
    seeded = []
    for entry in _load_seed(args.seed):
        try:
            machine = services.registry.create(
                str(entry.get("clusterId", args.cluster)),
                name=entry.get("name"),
                ip_address=entry.get("ipAddress"),
                instance_type=entry.get("instanceType"),
                tags=entry.get("tags") or [],
            )
        except MachineError as exc:
            raise SystemExit(f"Invalid seed machine {entry!r}: {exc}") from exc
        if entry.get("state") == MachineState.STARTED.value:
            services.registry.compare_and_set_state(
                machine, MachineState.default(), MachineState.STARTED
            )
        seeded.append(machine)

    results = services.dispatcher.dispatch(args.cluster, args.action, args.tags)

    output = {
        "meta": {
            "cluster": args.cluster,
            "action": args.action,
            "tags": args.tags,
            "seeded": len(seeded),
        },
        "results": [result.to_dict() for result in results],
        "states": {
            machine.id: services.state_machine.state_of(machine).value
            for machine in seeded
            if machine.cluster_id == args.cluster
        },
    }

    print(json.dumps(output, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
