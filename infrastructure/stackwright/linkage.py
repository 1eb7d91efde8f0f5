"""
Cross-Account / Cross-Stack Linkage
===================================
A producer stack hands an identifier (VPC id, listener ARN, zone id) to a
consumer stack in one of two ways:

  DIRECT    same account, same region, producer created in this pass.
            The consumer receives the producer's construct and CDK wires a
            CloudFormation export/import.
  INDIRECT  anything else. The producer publishes an SSM String parameter at
            a predictable path; the consumer reads the same path, either as
            a deploy-time token or at synth time through a context lookup.

Both sides build the path through ParameterPath.build() from the same naming
inputs. A divergence (brand-scoped on one side, unscoped on the other) is
invisible to the type checker and only shows up at lookup time, so every
publish and lookup is recorded in a LinkageLedger and `dangling()` lists the
lookups nobody in this pass publishes.

Deploy ordering across independent runs (infrastructure before workloads) is
the caller's job; a lookup that runs too early fails with
ParameterNotPublishedError rather than ParameterNotFoundError.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import aws_cdk as cdk
import boto3
from aws_cdk import aws_ssm as ssm
from botocore.exceptions import ClientError
from constructs import Construct

from stackwright.errors import LinkageError, ParameterNotFoundError, ParameterNotPublishedError
from stackwright.logger import get_logger
from stackwright.naming import NamingContext, pascal_case

logger = get_logger(__name__)


class Linkage(Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"


class _Placed(Protocol):
    account: str
    region: str


def classify(producer: _Placed | None, consumer: _Placed) -> Linkage:
    """
    DIRECT only when the producer exists in this pass (not None) and shares
    the consumer's account and region.
    """
    if producer is None:
        return Linkage.INDIRECT
    if producer.account == consumer.account and producer.region == consumer.region:
        return Linkage.DIRECT
    return Linkage.INDIRECT


@dataclass(frozen=True)
class ParameterPath:
    value: str
    namespace: str
    key: str
    brand: str | None = None

    @classmethod
    def build(
        cls,
        naming: NamingContext,
        namespace: str,
        key: str,
        brand: str | None = None,
    ) -> "ParameterPath":
        return cls(
            value=naming.parameter_path(namespace, key, brand=brand),
            namespace=namespace,
            key=key,
            brand=brand,
        )

    @property
    def construct_id(self) -> str:
        return "Param" + pascal_case(self.value.replace("/", "-"))

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

@dataclass
class LinkageLedger:
    """Producers and consumers of every indirect path seen in one pass."""

    producers: dict[str, str] = field(default_factory=dict)
    consumers: dict[str, list[str]] = field(default_factory=dict)

    def record_publish(self, path: ParameterPath | str, producer: str) -> None:
        path = str(path)
        existing = self.producers.get(path)
        if existing is not None and existing != producer:
            raise LinkageError(path, f"Already published by {existing}, cannot publish from {producer}")
        self.producers[path] = producer

    def record_lookup(self, path: ParameterPath | str, consumer: str) -> None:
        readers = self.consumers.setdefault(str(path), [])
        if consumer not in readers:
            readers.append(consumer)

    def expects(self, path: ParameterPath | str) -> bool:
        return str(path) in self.producers

    def producer_of(self, path: ParameterPath | str) -> str | None:
        return self.producers.get(str(path))

    def dangling(self) -> list[str]:
        return sorted(p for p in self.consumers if p not in self.producers)


def _owner(scope: Construct) -> str:
    return cdk.Stack.of(scope).stack_name


def publish(
    scope: Construct,
    path: ParameterPath,
    value: str,
    description: str | None = None,
    ledger: LinkageLedger | None = None,
) -> ssm.StringParameter:
    if ledger is not None:
        ledger.record_publish(path, _owner(scope))
    return ssm.StringParameter(
        scope, path.construct_id,
        parameter_name=str(path),
        string_value=value,
        description=description,
    )


def lookup(scope: Construct, path: ParameterPath, ledger: LinkageLedger | None = None) -> str:
    """Deploy-time read: a CloudFormation parameter token resolved on deploy."""
    if ledger is not None:
        ledger.record_lookup(path, _owner(scope))
    return ssm.StringParameter.value_for_string_parameter(scope, str(path))


def lookup_now(scope: Construct, path: ParameterPath, ledger: LinkageLedger | None = None) -> str:
    """
    Synth-time read through a CDK context lookup. Needed where the value
    shapes the template itself (a VPC id handed to Vpc.from_lookup).
    """
    if ledger is not None:
        ledger.record_lookup(path, _owner(scope))
    return ssm.StringParameter.value_from_lookup(scope, str(path))


# ---------------------------------------------------------------------------
# Runtime parameter store boundary
# ---------------------------------------------------------------------------

class ParameterStore(Protocol):
    def publish(self, path: str, value: str) -> None: ...

    def lookup(self, path: str) -> str: ...


def _missing(path: str, ledger: LinkageLedger | None) -> LinkageError:
    if ledger is not None and ledger.expects(path):
        return ParameterNotPublishedError(path, producer=ledger.producer_of(path))
    return ParameterNotFoundError(path)


class SsmParameterStore:
    """
    SSM-backed store for reads outside of synthesis (plan checks, CI
    preflight). The ledger tells "not deployed yet" apart from "no producer".
    """

    def __init__(self, client=None, ledger: LinkageLedger | None = None, region_name: str | None = None):
        self._client = client or boto3.client("ssm", region_name=region_name)
        self._ledger = ledger

    def publish(self, path: str, value: str) -> None:
        self._client.put_parameter(Name=str(path), Value=value, Type="String", Overwrite=True)
        logger.info("Parameter published", extra={"path": str(path)})

    def lookup(self, path: str) -> str:
        path = str(path)
        try:
            response = self._client.get_parameter(Name=path)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ParameterNotFound":
                raise _missing(path, self._ledger) from e
            raise
        return response["Parameter"]["Value"]


class InMemoryParameterStore:
    def __init__(self, ledger: LinkageLedger | None = None, values: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(values or {})
        self._ledger = ledger

    def publish(self, path: str, value: str) -> None:
        self._values[str(path)] = value

    def lookup(self, path: str) -> str:
        path = str(path)
        if path not in self._values:
            raise _missing(path, self._ledger)
        return self._values[path]
