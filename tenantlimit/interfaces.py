"""Service, transport and backend store interfaces."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tenantlimit.models import (
    CheckLimitRequest,
    CheckLimitResponse,
    CreateRuleRequest,
    Decision,
    Rule,
    RuleParams,
    UpdateRuleRequest,
)


@runtime_checkable
class RateLimitService(Protocol):
    """Evaluates rate limit requests."""

    def check_limit(self, req: CheckLimitRequest | None) -> CheckLimitResponse:
        """Evaluate a single request."""

    def check_limit_batch(
        self, reqs: list[CheckLimitRequest | None] | None
    ) -> list[CheckLimitResponse]:
        """Evaluate requests in order, one response per request."""

    def release_response(self, resp: CheckLimitResponse | None) -> None:
        """Hand a response back for reuse."""


@runtime_checkable
class AdminService(Protocol):
    """Manages rate limit rules."""

    def create_rule(self, req: CreateRuleRequest) -> Rule:
        """Create a rule."""

    def update_rule(self, req: UpdateRuleRequest) -> Rule:
        """Update a rule at its expected version."""

    def delete_rule(self, tenant_id: str, resource: str, expected_version: int) -> None:
        """Delete a rule at its expected version."""

    def get_rule(self, tenant_id: str, resource: str) -> Rule:
        """Fetch one rule."""

    def list_rules(self, tenant_id: str) -> list[Rule]:
        """List a tenant's rules."""


@runtime_checkable
class Transport(Protocol):
    """Exposes services over a transport layer."""

    def serve_rate_limit(self, service: RateLimitService) -> None:
        """Serve the rate limit service."""

    def serve_admin(self, service: AdminService) -> None:
        """Serve the admin service."""

    def shutdown(self) -> None:
        """Stop serving."""


@runtime_checkable
class RedisPipeline(Protocol):
    """Queues limiter operations for one round trip."""

    def exec_token_bucket(self, key: str, params: RuleParams, cost: int) -> None:
        """Queue a token bucket evaluation."""

    def exec_fixed_window(self, key: str, params: RuleParams, cost: int) -> None:
        """Queue a fixed window evaluation."""

    def exec_sliding_window(self, key: str, params: RuleParams, cost: int) -> None:
        """Queue a sliding window evaluation."""

    def exec(self) -> list[Decision]:
        """Run the queued operations, returning decisions in queue order."""


@runtime_checkable
class RedisClient(Protocol):
    """Backend that evaluates limiter algorithms."""

    def healthy(self) -> bool:
        """Report whether the backend is reachable."""

    def pipeline(self) -> RedisPipeline:
        """Start a new pipeline."""

    def exec_token_bucket(self, key: str, params: RuleParams, cost: int) -> Decision:
        """Evaluate a token bucket."""

    def exec_fixed_window(self, key: str, params: RuleParams, cost: int) -> Decision:
        """Evaluate a fixed window."""

    def exec_sliding_window(self, key: str, params: RuleParams, cost: int) -> Decision:
        """Evaluate a sliding window."""