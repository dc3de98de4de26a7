"""async_operations.environment — Compose the ECS task's environment overrides.

Variables are ``{"name": ..., "value": ...}`` dicts, the shape ECS container
overrides take. The four static variables always come first; variables copied
from a Lambda function's configuration never replace them.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from async_operations.aws_clients import _client_for
from async_operations.errors import ConfigLookupError

__all__ = [
    "EnvVar",
    "LambdaEnvironmentComposer",
    "dedupe_environment",
]

logger = logging.getLogger(__name__)

EnvVar = Dict[str, str]


def dedupe_environment(variables: Iterable[EnvVar]) -> List[EnvVar]:
    """Drop repeated names, keeping the first occurrence and the input order."""
    seen = set()
    out: List[EnvVar] = []
    for var in variables:
        name = var["name"]
        if name in seen:
            continue
        seen.add(name)
        out.append({"name": name, "value": var["value"]})
    return out


class LambdaEnvironmentComposer:
    def __init__(self, lambda_client, client_factory: Optional[Callable[[float], Any]] = None) -> None:
        self._lambda = lambda_client
        self._client_factory = client_factory

    @staticmethod
    def task_environment(
        async_operation_id: str,
        table_name: str,
        lambda_name: str,
        payload_url: str,
    ) -> List[EnvVar]:
        return [
            {"name": "asyncOperationId", "value": async_operation_id},
            {"name": "asyncOperationsTable", "value": table_name},
            {"name": "lambdaName", "value": lambda_name},
            {"name": "payloadUrl", "value": payload_url},
        ]

    def function_environment(self, function_name: str, timeout: Optional[float] = None) -> List[EnvVar]:
        """Return the environment variables configured on ``function_name``."""
        client = _client_for(self._lambda, self._client_factory, timeout)
        try:
            resp = client.get_function_configuration(FunctionName=function_name)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise ConfigLookupError(
                f"Unable to read configuration for function '{function_name}': {code}",
                function_name=function_name,
            ) from exc
        except BotoCoreError as exc:
            raise ConfigLookupError(
                f"Unable to read configuration for function '{function_name}': {exc}",
                function_name=function_name,
            ) from exc

        variables = ((resp or {}).get("Environment") or {}).get("Variables") or {}
        return [{"name": name, "value": str(value)} for name, value in variables.items()]

    def compose(
        self,
        static_vars: Iterable[EnvVar],
        function_name: Optional[str] = None,
        merge_function_environment: bool = False,
        timeout: Optional[float] = None,
    ) -> List[EnvVar]:
        variables = list(static_vars)
        if merge_function_environment:
            if not function_name:
                raise ConfigLookupError("Function environment merge requested without a function name")
            function_vars = self.function_environment(function_name, timeout=timeout)
            static_names = {var["name"] for var in variables}
            shadowed = sorted(var["name"] for var in function_vars if var["name"] in static_names)
            if shadowed:
                logger.warning(
                    "Ignoring function-level variables that collide with task variables on %s: %s",
                    function_name,
                    ", ".join(shadowed),
                )
            variables.extend(function_vars)
        return dedupe_environment(variables)
