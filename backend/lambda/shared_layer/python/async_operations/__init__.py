"""async_operations — Launch and record long-running async operations.

Provides:
    - S3 payload staging
    - ECS task environment composition (optionally merged from a Lambda)
    - ECS task launch with tagged launch results
    - Dual-store AsyncOperation records (PostgreSQL + DynamoDB)
    - The coordinator that ties the steps together, within an optional deadline
"""

__version__ = "1.0.0"
