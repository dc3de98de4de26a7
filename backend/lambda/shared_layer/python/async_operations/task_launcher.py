"""async_operations.task_launcher — Start one ECS task for an async operation.

``EcsTaskLauncher.launch`` sends exactly one RunTask request and returns a
``Launched`` or ``Failed`` result. ECS can accept the request and still report
per-task failures in the response body; those are ``Failed`` too.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from async_operations.aws_clients import _client_for
from async_operations.config import DEFAULT_CONTAINER_NAME, DEFAULT_LAUNCH_TYPE
from async_operations.environment import EnvVar
from async_operations.models import Failed, LaunchResult, Launched

__all__ = [
    "EcsTaskLauncher",
    "classify_run_task_response",
]

logger = logging.getLogger(__name__)


def classify_run_task_response(response: Dict[str, Any]) -> LaunchResult:
    failures = (response or {}).get("failures") or []
    if failures:
        first = failures[0] or {}
        return Failed(reason=str(first.get("reason") or "UNKNOWN"), arn=first.get("arn"))

    tasks = (response or {}).get("tasks") or []
    task_arn = (tasks[0] or {}).get("taskArn") if tasks else None
    if not task_arn:
        return Failed(reason="ECS returned no tasks")
    return Launched(task_arn=task_arn)


class EcsTaskLauncher:
    def __init__(
        self,
        ecs_client,
        launch_type: str = DEFAULT_LAUNCH_TYPE,
        container_name: str = DEFAULT_CONTAINER_NAME,
        client_factory: Optional[Callable[[float], Any]] = None,
    ) -> None:
        self._ecs = ecs_client
        self._client_factory = client_factory
        self.launch_type = launch_type
        self.container_name = container_name

    def launch(
        self,
        cluster: str,
        task_definition: str,
        environment: List[EnvVar],
        timeout: Optional[float] = None,
    ) -> LaunchResult:
        """Send one RunTask. ``timeout`` bounds the call when the caller has a deadline."""
        client = _client_for(self._ecs, self._client_factory, timeout)
        try:
            response = client.run_task(
                cluster=cluster,
                taskDefinition=task_definition,
                launchType=self.launch_type,
                overrides={
                    "containerOverrides": [
                        {
                            "name": self.container_name,
                            "environment": environment,
                        },
                    ],
                },
            )
        except ClientError as exc:
            err = exc.response.get("Error", {})
            code = err.get("Code", "Unknown")
            message = err.get("Message", "")
            logger.error("ECS RunTask rejected on %s: %s %s", cluster, code, message)
            return Failed(reason=f"{code}: {message}" if message else code)
        except BotoCoreError as exc:
            logger.error("ECS RunTask call failed on %s: %s", cluster, exc)
            return Failed(reason=str(exc))

        result = classify_run_task_response(response)
        if isinstance(result, Failed):
            logger.warning("ECS RunTask reported failure on %s: %s", cluster, result.reason)
        else:
            logger.info("[INFO] Started ECS task %s on %s", result.task_arn, cluster)
        return result
