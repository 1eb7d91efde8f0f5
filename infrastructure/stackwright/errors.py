"""
Stackwright Errors
==================
One hierarchy for every failure the resolver can raise.

  ConfigurationError  the manifest itself is unusable; raised before any stack exists
  TopologyError       derived brand/secret/environment references do not resolve
  OrchestrationError  a stack builder failed; carries the component and the cause
  LinkageError        an indirect (parameter path) reference could not be read

Component-scoped errors are collected by the orchestrator and re-raised
through ResolutionResult.raise_for_failures().
"""
from __future__ import annotations


class StackwrightError(Exception):
    """Base class for all resolver errors."""


class ConfigurationError(StackwrightError):
    """Malformed or missing required manifest fields."""


class TopologyError(StackwrightError):
    """Derived topology is inconsistent or references something undeclared."""

    def __init__(self, message: str, component: str | None = None):
        self.component = component
        super().__init__(f"[{component}] {message}" if component else message)


class OrchestrationError(StackwrightError):
    """A builder invocation failed while creating a component's stacks."""

    def __init__(
        self,
        message: str,
        component: str,
        cause: BaseException | None = None,
        environment: str | None = None,
    ):
        self.component = component
        self.cause = cause
        self.environment = environment
        where = f"{component}/{environment}" if environment else component
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"[{where}] {message}{detail}")


class DuplicateUnitError(OrchestrationError):
    """A stack name was requested twice in one pass, or clashes with a stack another component owns."""


class LinkageError(StackwrightError):
    """Raised when an indirect reference cannot be resolved."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{message}: {path}")


class ParameterNotFoundError(LinkageError):
    """No producer in the manifest will ever publish this path."""

    def __init__(self, path: str):
        super().__init__(path, "Parameter path has no producer")


class ParameterNotPublishedError(LinkageError):
    """A producer is declared for this path but has not been deployed yet."""

    def __init__(self, path: str, producer: str | None = None):
        self.producer = producer
        hint = f" (deploy {producer} first)" if producer else ""
        super().__init__(path, f"Parameter not published yet{hint}")
