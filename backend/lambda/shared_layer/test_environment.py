"""test_environment.py — ECS task environment composition tests."""

from __future__ import annotations

import os
import sys
import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, ReadTimeoutError

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "python"))

from async_operations.environment import LambdaEnvironmentComposer, dedupe_environment
from async_operations.errors import ConfigLookupError


def _names(variables):
    return [var["name"] for var in variables]


class TaskEnvironmentTests(unittest.TestCase):
    def test_static_variables_in_order(self):
        variables = LambdaEnvironmentComposer.task_environment(
            "op-1",
            "AsyncOperationsTable",
            "BulkOperationLambda",
            "s3://bucket/stack/async-operation-payloads/op-1.json",
        )
        self.assertEqual(
            variables,
            [
                {"name": "asyncOperationId", "value": "op-1"},
                {"name": "asyncOperationsTable", "value": "AsyncOperationsTable"},
                {"name": "lambdaName", "value": "BulkOperationLambda"},
                {"name": "payloadUrl", "value": "s3://bucket/stack/async-operation-payloads/op-1.json"},
            ],
        )


class ComposeTests(unittest.TestCase):
    def setUp(self):
        self.lambda_client = MagicMock()
        self.composer = LambdaEnvironmentComposer(self.lambda_client)

    def test_without_merge_does_not_call_lambda(self):
        static = [{"name": "id", "value": "X"}]
        self.assertEqual(self.composer.compose(static, "BulkOperationLambda"), static)
        self.lambda_client.get_function_configuration.assert_not_called()

    def test_static_variables_win_over_function_variables(self):
        self.lambda_client.get_function_configuration.return_value = {
            "Environment": {"Variables": {"FOO": "1", "id": "should-not-override"}},
        }
        static = [
            {"name": "id", "value": "X"},
            {"name": "payloadUrl", "value": "s3://bucket/key.json"},
        ]

        variables = self.composer.compose(static, "BulkOperationLambda", merge_function_environment=True)

        self.assertEqual(_names(variables).count("id"), 1)
        self.assertEqual(_names(variables).count("FOO"), 1)
        values = {var["name"]: var["value"] for var in variables}
        self.assertEqual(values["id"], "X")
        self.assertEqual(values["FOO"], "1")
        self.assertEqual(_names(variables), ["id", "payloadUrl", "FOO"])
        self.lambda_client.get_function_configuration.assert_called_once_with(
            FunctionName="BulkOperationLambda"
        )

    def test_function_variables_keep_declared_order(self):
        self.lambda_client.get_function_configuration.return_value = {
            "Environment": {"Variables": {"stackName": "dev", "system_bucket": "b", "ES_HOST": "es"}},
        }
        variables = self.composer.compose([], "BulkOperationLambda", merge_function_environment=True)
        self.assertEqual(_names(variables), ["stackName", "system_bucket", "ES_HOST"])

    def test_function_without_environment(self):
        self.lambda_client.get_function_configuration.return_value = {"FunctionName": "f"}
        static = [{"name": "id", "value": "X"}]
        self.assertEqual(self.composer.compose(static, "f", merge_function_environment=True), static)

    def test_unknown_function_raises_config_lookup_error(self):
        self.lambda_client.get_function_configuration.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "Function not found"}},
            "GetFunctionConfiguration",
        )
        with self.assertRaises(ConfigLookupError) as ctx:
            self.composer.compose([], "missing-function", merge_function_environment=True)
        self.assertEqual(ctx.exception.function_name, "missing-function")
        self.assertIn("ResourceNotFoundException", str(ctx.exception))

    def test_transport_failure_raises_config_lookup_error(self):
        self.lambda_client.get_function_configuration.side_effect = ReadTimeoutError(
            endpoint_url="https://lambda.us-east-1.amazonaws.com"
        )
        with self.assertRaises(ConfigLookupError):
            self.composer.compose([], "f", merge_function_environment=True)

    def test_merge_without_function_name(self):
        with self.assertRaises(ConfigLookupError):
            self.composer.compose([], None, merge_function_environment=True)

    def test_merge_lookup_uses_bounded_client(self):
        factory = MagicMock()
        factory.return_value.get_function_configuration.return_value = {
            "Environment": {"Variables": {"FOO": "1"}},
        }
        composer = LambdaEnvironmentComposer(self.lambda_client, client_factory=factory)

        variables = composer.compose([], "BulkOperationLambda", merge_function_environment=True, timeout=1.5)

        self.assertEqual(variables, [{"name": "FOO", "value": "1"}])
        factory.assert_called_once_with(1.5)
        self.lambda_client.get_function_configuration.assert_not_called()


class DedupeTests(unittest.TestCase):
    def test_keeps_first_occurrence(self):
        variables = dedupe_environment(
            [
                {"name": "A", "value": "1"},
                {"name": "B", "value": "2"},
                {"name": "A", "value": "3"},
            ]
        )
        self.assertEqual(variables, [{"name": "A", "value": "1"}, {"name": "B", "value": "2"}])


if __name__ == "__main__":
    unittest.main()
