"""Worker runner entrypoint.

Usage:
  python -m mesh_workers.runner <component-name> [<component-name> ...]
  python -m mesh_workers.runner all
  COMPONENT=catalog-access python -m mesh_workers.runner

A deployed service runs one component, selected by CLI argument or the
COMPONENT environment variable (CLI wins). Naming several components, or
`all`, runs their workers side by side in one process. That is how local
development works without Upstash: fakeredis lives in process memory, so the
catalog and bus state are only shared by workers in the same process.

Each worker polls its component's dedicated task queue and registers only that
component's workflows and/or activities. Workers run until interrupted
(SIGINT/SIGTERM). MESH_LOG_LEVEL sets the log level (default INFO).
"""

import asyncio
import logging
import os
import sys

from mesh_shared.temporal_client import connect
from temporalio.worker import Worker

from mesh_workers.registry import COMPONENTS

logging.basicConfig(
    level=os.environ.get("MESH_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ALL = "all"


def resolve_components(names: list[str]) -> list[str]:
    """Expand `all` and reject unknown names, preserving order without duplicates."""
    resolved: list[str] = []
    for name in names:
        expanded = list(COMPONENTS) if name == ALL else [name]
        for component in expanded:
            if component not in COMPONENTS:
                available = ", ".join(sorted(COMPONENTS.keys()))
                raise ValueError(f"Unknown component '{component}'. Available: {available}, {ALL}")
            if component not in resolved:
                resolved.append(component)
    return resolved


async def run_workers(component_names: list[str]) -> None:
    """Start one Temporal worker per component and run them until interrupted."""
    client = await connect()
    workers = []
    for name in component_names:
        config = COMPONENTS[name]
        logger.info(
            f"Starting worker for '{name}' on queue '{config.task_queue}' "
            f"(workflows={len(config.workflows)}, activities={len(config.activities)})"
        )
        workers.append(
            Worker(
                client,
                task_queue=config.task_queue,
                workflows=config.workflows,
                activities=config.activities,
            )
        )

    await asyncio.gather(*(worker.run() for worker in workers))


def main() -> None:
    """CLI entrypoint — parse component names and start their workers.

    Precedence: CLI arguments > COMPONENT env var.
    """
    names = sys.argv[1:] or [n for n in os.environ.get("COMPONENT", "").split(",") if n]

    if not names:
        print("Usage: python -m mesh_workers.runner <component> [<component> ...]")
        print("  or: COMPONENT=<component> python -m mesh_workers.runner")
        print(f"Components: {', '.join(sorted(COMPONENTS.keys()))}, {ALL}")
        sys.exit(1)

    try:
        components = resolve_components(names)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    asyncio.run(run_workers(components))


if __name__ == "__main__":
    main()
