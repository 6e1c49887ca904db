"""
Reconciliation driver: walk the catalog, ask the supplier, write only what differs.

A job plugs in a policy with four hooks (resolve, desired_state, currently_has,
apply). The driver owns the counting, failure isolation, throttling and the
optional update cap.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterator, Protocol

from errors import BridgeError
from shopify_catalog import CatalogEntity
from sifam_client import SupplierFact

logger = logging.getLogger(__name__)

TAG = "tag"
PRICE = "price"
PHOTO = "photo"


@dataclass
class Delta:
    tags: list[str] = field(default_factory=list)
    price: Decimal | None = None
    photos: list[str] = field(default_factory=list)

    def items(self) -> Iterator[tuple[str, object]]:
        for t in self.tags:
            yield TAG, t
        if self.price is not None:
            yield PRICE, self.price
        for url in self.photos:
            yield PHOTO, url

    @classmethod
    def from_items(cls, items) -> "Delta":
        delta = cls()
        for kind, value in items:
            if kind == TAG and value not in delta.tags:
                delta.tags.append(value)
            elif kind == PRICE:
                delta.price = value
            elif kind == PHOTO and value not in delta.photos:
                delta.photos.append(value)
        return delta

    def is_empty(self) -> bool:
        return not self.tags and self.price is None and not self.photos


@dataclass
class RunCounters:
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    empty_key: int = 0
    limited: bool = False

    @property
    def processed(self) -> int:
        return self.updated + self.skipped + self.failed + self.empty_key

    def as_dict(self) -> dict:
        out = {"updated": self.updated, "skipped": self.skipped, "emptyKey": self.empty_key, "failed": self.failed}
        if self.limited:
            out["limited"] = True
        return out

    def to_json(self) -> str:
        return json.dumps(self.as_dict())


class Policy(Protocol):
    def resolve(self, entity: CatalogEntity) -> SupplierFact | None: ...

    def desired_state(self, entity: CatalogEntity, fact: SupplierFact) -> Delta: ...

    def currently_has(self, entity: CatalogEntity, item: tuple[str, object]) -> bool: ...

    def apply(self, entity: CatalogEntity, delta: Delta) -> None: ...


class Reconciler:
    def __init__(self, reader, policy: Policy, *, throttle: float = 0.25, max_updates: int = 0, only_key: str = "", sleep=time.sleep):
        self.reader = reader
        self.policy = policy
        self.throttle = throttle
        self.max_updates = max(0, int(max_updates or 0))
        self.only_key = (only_key or "").strip()
        self.sleep = sleep

    def delta_for(self, entity: CatalogEntity, fact: SupplierFact) -> Delta:
        desired = self.policy.desired_state(entity, fact)
        return Delta.from_items(i for i in desired.items() if not self.policy.currently_has(entity, i))

    def _process(self, entity: CatalogEntity, counters: RunCounters) -> None:
        try:
            fact = self.policy.resolve(entity)
        except BridgeError as exc:
            counters.failed += 1
            logger.error("[FAIL lookup] %s sku %s: %s", entity.id, entity.sku, exc)
            return
        if fact is None:
            counters.skipped += 1
            return

        delta = self.delta_for(entity, fact)
        if delta.is_empty():
            counters.skipped += 1
            return

        try:
            self.policy.apply(entity, delta)
        except BridgeError as exc:
            counters.failed += 1
            logger.error("[FAIL] %s sku %s: %s", entity.id, entity.sku, exc)
            return
        counters.updated += 1

    def run(self) -> RunCounters:
        counters = RunCounters()
        try:
            for entity in self.reader.iterate():
                if not entity.sku:
                    counters.empty_key += 1
                    continue
                if self.only_key and not entity.carries(self.only_key):
                    continue

                self._process(entity, counters)
                self.sleep(self.throttle)

                if self.max_updates and counters.updated >= self.max_updates:
                    counters.limited = True
                    logger.info("max updates reached (%d), stopping", self.max_updates)
                    break
        except Exception:
            logger.error("run aborted, partial counters: %s", counters.to_json())
            raise
        return counters
