"""Who may act on an order. One predicate, chosen by configuration."""
import enum
from dataclasses import dataclass
from typing import Callable, Optional

from .models import Order


class AccessPolicy(str, enum.Enum):
    OWNER_ONLY = "owner_only"
    ALL_ACCESS = "all_access"


@dataclass(frozen=True)
class Caller:
    distributor_id: Optional[int]

    @classmethod
    def from_subject(cls, subject: str) -> "Caller":
        try:
            return cls(distributor_id=int(subject))
        except (TypeError, ValueError):
            # A token whose subject is not a distributor id owns nothing
            return cls(distributor_id=None)


AccessPredicate = Callable[[Caller, Order], bool]


def owner_only(caller: Caller, order: Order) -> bool:
    return caller.distributor_id is not None and order.assigned_distributor_id == caller.distributor_id


def all_access(caller: Caller, order: Order) -> bool:
    return True


def build_access_predicate(policy: str) -> AccessPredicate:
    policy = AccessPolicy(policy)
    if policy is AccessPolicy.ALL_ACCESS:
        return all_access
    return owner_only
