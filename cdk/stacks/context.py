"""Deployment context resolution: git branch -> environment entry -> merged settings.

The configuration document has two top-level keys:

    environments:   ordered list, one entry per deployable branch
      - branchName: main
        environment: prod
        region: us-east-1
        accountNumber: "123456789012"
        appName: demo
    globals:        defaults merged underneath the matched entry
      lambdaMemorySize: 1024

All inputs are passed explicitly; nothing here reads CDK context or
environment variables.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Sequence

import yaml

from stacks.errors import ConfigurationValidationError, ContextResolutionError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("appName", "environment", "region", "accountNumber")

DEFAULT_LAMBDA_MEMORY_MB = 1024
_LAMBDA_MEMORY_RANGE = (128, 10240)


@dataclass(frozen=True)
class ResolvedContext:
    """Merged, validated settings for one deployment environment."""

    app_name: str
    environment: str
    region: str
    account_number: str
    branch_name: str | None = None
    settings: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only copy; the caller's dict cannot change a resolved context.
        object.__setattr__(self, "settings", MappingProxyType(dict(self.settings)))

    def __hash__(self) -> int:
        return hash(self.to_json())

    @property
    def lambda_memory_mb(self) -> int:
        return self.settings.get("lambdaMemorySize", DEFAULT_LAMBDA_MEMORY_MB)

    @property
    def extra_tags(self) -> dict[str, str]:
        return {str(k): str(v) for k, v in (self.settings.get("tags") or {}).items()}

    def to_dict(self) -> dict[str, Any]:
        return dict(self.settings)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


def get_current_branch(cwd: str | None = None) -> str:
    """Return the checked-out git branch name.

    Raises ContextResolutionError outside a work tree, when git is not
    installed, or when HEAD is detached.
    """
    cmd = ["git", "rev-parse", "--abbrev-ref", "HEAD"]
    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, cwd=cwd, timeout=30
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ContextResolutionError(f"Could not run git to read branch: {e}") from e

    if result.returncode != 0:
        raise ContextResolutionError(
            f"git branch lookup failed: {result.stderr.strip() or 'unknown error'}"
        )

    branch = result.stdout.strip()
    if not branch or branch == "HEAD":
        raise ContextResolutionError(
            "HEAD is detached; check out a branch or pass -c branch=<name>"
        )
    logger.debug("Current git branch: %s", branch)
    return branch


def load_context_config(path: str) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """Read `environments` and `globals` from a YAML configuration file."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationValidationError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationValidationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationValidationError(
            f"Config file {path} must contain a mapping at the top level"
        )
    if "environments" not in data:
        raise ConfigurationValidationError(
            f"Config file {path} is missing 'environments'", field="environments"
        )
    return data["environments"], data.get("globals") or {}


def _validate_environments(environments: Any) -> None:
    if not isinstance(environments, Sequence) or isinstance(environments, (str, bytes)):
        raise ConfigurationValidationError(
            "'environments' must be a list of environment objects",
            field="environments",
        )
    if not environments:
        raise ConfigurationValidationError(
            "'environments' must not be empty", field="environments"
        )
    for idx, entry in enumerate(environments):
        if not isinstance(entry, Mapping):
            raise ConfigurationValidationError(
                f"environments[{idx}] must be an object", field="environments"
            )
        if not entry.get("branchName"):
            raise ConfigurationValidationError(
                f"environments[{idx}] is missing required field 'branchName'",
                field="branchName",
            )


def _validate_settings(settings: Mapping[str, Any]) -> None:
    for name in REQUIRED_FIELDS:
        value = settings.get(name)
        if value is None or value == "":
            raise ConfigurationValidationError(
                f"Missing required configuration field: {name}", field=name
            )
        if not isinstance(value, str):
            raise ConfigurationValidationError(
                f"Configuration field {name} must be a string, got {type(value).__name__}",
                field=name,
            )

    memory = settings.get("lambdaMemorySize")
    if memory is not None:
        low, high = _LAMBDA_MEMORY_RANGE
        if isinstance(memory, bool) or not isinstance(memory, int) or not low <= memory <= high:
            raise ConfigurationValidationError(
                f"lambdaMemorySize must be an integer between {low} and {high}",
                field="lambdaMemorySize",
            )

    tags = settings.get("tags")
    if tags is not None and not isinstance(tags, Mapping):
        raise ConfigurationValidationError("tags must be an object", field="tags")


def resolve_context(
    branch: str,
    environments: Sequence[Mapping[str, Any]],
    globals_: Mapping[str, Any] | None = None,
) -> ResolvedContext:
    """Select the environment entry for `branch` and merge it over `globals_`.

    Exactly one entry must carry a matching `branchName`; zero or several
    matches raise ContextResolutionError.
    """
    if not isinstance(branch, str) or not branch:
        raise ContextResolutionError("Branch name must be a non-empty string")

    _validate_environments(environments)
    if globals_ is not None and not isinstance(globals_, Mapping):
        raise ConfigurationValidationError("'globals' must be an object", field="globals")

    matches = [entry for entry in environments if entry["branchName"] == branch]
    if not matches:
        known = ", ".join(str(e["branchName"]) for e in environments)
        raise ContextResolutionError(
            f"No environment configured for branch '{branch}' (known: {known})"
        )
    if len(matches) > 1:
        raise ContextResolutionError(
            f"Branch '{branch}' matches {len(matches)} environments; branchName must be unique"
        )

    settings = {**(globals_ or {}), **matches[0]}
    _validate_settings(settings)

    logger.info(
        "Resolved branch %s -> %s (%s/%s)",
        branch, settings["environment"], settings["accountNumber"], settings["region"],
    )
    return ResolvedContext(
        app_name=settings["appName"],
        environment=settings["environment"],
        region=settings["region"],
        account_number=settings["accountNumber"],
        branch_name=settings.get("branchName"),
        settings=settings,
    )
